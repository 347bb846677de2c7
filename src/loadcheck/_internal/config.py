"""Run configuration: one validated struct built from flags, file and environment."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loadcheck._internal.errors import ConfigError
from loadcheck._internal.units import parse_duration
from loadcheck.dsl.target import ValidatedTarget, resolve

if TYPE_CHECKING:
    from collections.abc import Mapping

    from loadcheck._internal.types import Headers

TARGET_ENV_VAR = "LOAD_TEST_URI"

DEFAULT_VUS = 10
DEFAULT_DURATION = "2m"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_PASS_THRESHOLD = 1.0

_ENV_VUS = "LOADCHECK_VUS"
_ENV_DURATION = "LOADCHECK_DURATION"
_ENV_TIMEOUT = "LOADCHECK_TIMEOUT"
_ENV_THRESHOLD = "LOADCHECK_THRESHOLD"
_ENV_RPS = "LOADCHECK_RPS"

_FILE_KEYS = frozenset({"vus", "duration", "timeout", "threshold", "rps", "headers"})


@dataclass(frozen=True)
class ScenarioConfig:
    """Immutable parameters of a single load test run.

    Instances validate themselves on construction, so a ``ScenarioConfig``
    that exists is always runnable.

    Attributes:
        target: Validated destination of the requests.
        virtual_users: Number of concurrent virtual users (>= 1).
        duration_seconds: Run length in seconds. Zero is allowed and yields
            an empty run.
        request_timeout: Total timeout of a single HTTP request in seconds.
        pass_threshold: Minimum aggregate check pass rate (0.0 to 1.0) for
            the run to be considered successful.
        rate_limit: Optional cap on requests per second across all virtual
            users.
        headers: Headers sent with every request.
    """

    target: ValidatedTarget
    virtual_users: int = DEFAULT_VUS
    duration_seconds: float = 120.0
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    rate_limit: float | None = None
    headers: Headers = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.virtual_users, bool) or self.virtual_users < 1:
            msg = f"vus must be >= 1, got {self.virtual_users}"
            raise ConfigError(msg)
        if self.duration_seconds < 0:
            msg = f"duration must be non-negative, got {self.duration_seconds}"
            raise ConfigError(msg)
        if self.request_timeout <= 0:
            msg = f"timeout must be positive, got {self.request_timeout}"
            raise ConfigError(msg)
        if not 0.0 <= self.pass_threshold <= 1.0:
            msg = f"threshold must be between 0.0 and 1.0, got {self.pass_threshold}"
            raise ConfigError(msg)
        if self.rate_limit is not None and self.rate_limit <= 0:
            msg = f"rps must be positive, got {self.rate_limit}"
            raise ConfigError(msg)

    @property
    def target_uri(self) -> str:
        """Return the target URL as a string."""
        return self.target.url


def load_config(
    *,
    uri: str | None = None,
    vus: int | None = None,
    duration: str | float | None = None,
    timeout: str | float | None = None,
    threshold: float | None = None,
    rps: float | None = None,
    config_file: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ScenarioConfig:
    """Build and validate the run configuration.

    Each setting is taken from the first source that provides it:
    explicit argument (CLI flag), TOML options file, environment variable,
    built-in default. The target URI has no default.

    Environment variables:
        LOAD_TEST_URI: Target URL (required unless ``uri`` is given).
        LOADCHECK_VUS: Number of virtual users (default: 10).
        LOADCHECK_DURATION: Run duration, e.g. ``"30s"`` (default: ``"2m"``).
        LOADCHECK_TIMEOUT: Per-request timeout (default: 30s).
        LOADCHECK_THRESHOLD: Minimum check pass rate (default: 1.0).
        LOADCHECK_RPS: Global requests-per-second cap (default: none).

    Args:
        uri: Target URL.
        vus: Number of virtual users.
        duration: Run duration in seconds or as a duration string.
        timeout: Per-request timeout in seconds or as a duration string.
        threshold: Minimum aggregate check pass rate.
        rps: Global requests-per-second cap.
        config_file: Optional TOML options file.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        A validated ``ScenarioConfig``.

    Raises:
        ConfigError: If the target is missing or any value is invalid.
    """
    env = os.environ if environ is None else environ
    file_options = load_options_file(config_file) if config_file is not None else {}

    raw_uri = uri if uri is not None else env.get(TARGET_ENV_VAR)
    if raw_uri is None:
        msg = f"{TARGET_ENV_VAR} is not set; it must name the endpoint under test"
        raise ConfigError(msg)
    target = resolve(raw_uri)

    vus_value = _first(vus, file_options.get("vus"), env.get(_ENV_VUS), DEFAULT_VUS)
    duration_value = _first(
        duration, file_options.get("duration"), env.get(_ENV_DURATION), DEFAULT_DURATION
    )
    timeout_value = _first(
        timeout, file_options.get("timeout"), env.get(_ENV_TIMEOUT), DEFAULT_REQUEST_TIMEOUT
    )
    threshold_value = _first(
        threshold, file_options.get("threshold"), env.get(_ENV_THRESHOLD), DEFAULT_PASS_THRESHOLD
    )
    rps_value = _first(rps, file_options.get("rps"), env.get(_ENV_RPS), None)

    return ScenarioConfig(
        target=target,
        virtual_users=_to_int(vus_value, "vus"),
        duration_seconds=_to_duration(duration_value, "duration"),
        request_timeout=_to_duration(timeout_value, "timeout"),
        pass_threshold=_to_float(threshold_value, "threshold"),
        rate_limit=None if rps_value is None else _to_float(rps_value, "rps"),
        headers=_to_headers(file_options.get("headers", {})),
    )


def load_options_file(path: str | Path) -> dict[str, Any]:
    """Read a TOML options file.

    Recognised keys: ``vus``, ``duration``, ``timeout``, ``threshold``,
    ``rps`` and a ``[headers]`` table. Example::

        vus = 10
        duration = "2m"

        [headers]
        Authorization = "Bearer ..."

    Args:
        path: Path to the TOML file.

    Returns:
        The parsed options.

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or contains
            unknown keys.
    """
    file_path = Path(path)
    try:
        with file_path.open("rb") as fh:
            options = tomllib.load(fh)
    except FileNotFoundError:
        msg = f"Options file not found: {file_path}"
        raise ConfigError(msg) from None
    except tomllib.TOMLDecodeError as exc:
        msg = f"Options file {file_path} is not valid TOML: {exc}"
        raise ConfigError(msg) from exc

    unknown = sorted(set(options) - _FILE_KEYS)
    if unknown:
        msg = (
            f"Unknown option(s) in {file_path}: {', '.join(unknown)}. "
            f"Allowed: {', '.join(sorted(_FILE_KEYS))}"
        )
        raise ConfigError(msg)
    return options


def _first(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        msg = f"{name} must be an integer, got: {value!r}"
        raise ConfigError(msg)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        msg = f"{name} must be an integer, got: {value!r}"
        raise ConfigError(msg) from None


def _to_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        msg = f"{name} must be a number, got: {value!r}"
        raise ConfigError(msg)
    try:
        return float(value)
    except (TypeError, ValueError):
        msg = f"{name} must be a number, got: {value!r}"
        raise ConfigError(msg) from None


def _to_duration(value: Any, name: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as exc:
        msg = f"{name}: {exc}"
        raise ConfigError(msg) from None


def _to_headers(value: Any) -> Headers:
    if not isinstance(value, dict):
        msg = f"headers must be a table of strings, got: {value!r}"
        raise ConfigError(msg)
    headers: Headers = {}
    for key, header_value in value.items():
        if not isinstance(header_value, str):
            msg = f"header {key!r} must be a string, got: {header_value!r}"
            raise ConfigError(msg)
        headers[str(key)] = header_value
    return headers
