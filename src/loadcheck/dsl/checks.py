"""Named assertions evaluated against every response."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadcheck._internal.errors import ScenarioError
from loadcheck._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from loadcheck.dsl.http_client import Response

    Predicate = Callable[[Response], object]

logger = get_logger("dsl.checks")


@dataclass(frozen=True)
class Check:
    """A named predicate over a ``Response``.

    Attributes:
        name: Name used in reports, e.g. ``"is status 200"``.
        predicate: Callable returning a truthy value when the check passes.
    """

    name: str
    predicate: Predicate


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check for one response.

    Attributes:
        name: Check name.
        passed: Whether the predicate returned a truthy value.
        error: Description of the exception raised by the predicate, if any.
    """

    name: str
    passed: bool
    error: str | None = None


def evaluate(response: Response, checks: Sequence[Check]) -> tuple[CheckResult, ...]:
    """Run every check against ``response``, in order.

    A predicate that raises is recorded as failed; the exception is logged
    at DEBUG level and never propagated, so a broken assertion cannot stop
    the virtual user that evaluated it.

    Args:
        response: The response to check.
        checks: Checks to evaluate.

    Returns:
        One ``CheckResult`` per check, in the order given.
    """
    results: list[CheckResult] = []
    for check in checks:
        try:
            passed = bool(check.predicate(response))
        except Exception as exc:
            logger.debug("Check %r raised on %s", check.name, response.url, exc_info=True)
            results.append(CheckResult(check.name, False, f"{type(exc).__name__}: {exc}"))
            continue
        results.append(CheckResult(check.name, passed))
    return tuple(results)


def checks_from_mapping(mapping: Mapping[str, Predicate]) -> tuple[Check, ...]:
    """Build checks from a ``{name: predicate}`` mapping, keeping its order."""
    return validate_checks(Check(name, predicate) for name, predicate in mapping.items())


def validate_checks(checks: Iterable[Check]) -> tuple[Check, ...]:
    """Return ``checks`` as a tuple after validating names and predicates.

    Raises:
        ScenarioError: If a name is empty or duplicated, or a predicate is
            not callable.
    """
    seen: set[str] = set()
    result: list[Check] = []
    for check in checks:
        if not check.name:
            msg = "Check names must be non-empty"
            raise ScenarioError(msg)
        if check.name in seen:
            msg = f"Duplicate check name: {check.name!r}"
            raise ScenarioError(msg)
        if not callable(check.predicate):
            msg = f"Check {check.name!r} predicate is not callable"
            raise ScenarioError(msg)
        seen.add(check.name)
        result.append(check)
    return tuple(result)


# ---------------------------------------------------------------------------
# Predicate helpers
# ---------------------------------------------------------------------------


def status_is(code: int) -> Predicate:
    """Pass when the response status equals ``code``."""

    def _predicate(response: Response) -> bool:
        return response.status == code

    return _predicate


def status_in(*codes: int) -> Predicate:
    """Pass when the response status is one of ``codes``."""
    allowed = frozenset(codes)

    def _predicate(response: Response) -> bool:
        return response.status in allowed

    return _predicate


def body_contains(text: str) -> Predicate:
    """Pass when the decoded body contains ``text``."""

    def _predicate(response: Response) -> bool:
        return text in response.text()

    return _predicate


def header_equals(name: str, value: str) -> Predicate:
    """Pass when header ``name`` (case-insensitive) equals ``value``.

    A header sent several times passes if any of its values matches.
    """
    wanted = name.lower()

    def _predicate(response: Response) -> bool:
        return any(k.lower() == wanted and v == value for k, v in response.headers.items())

    return _predicate


def latency_below(ms: float) -> Predicate:
    """Pass when the request completed in under ``ms`` milliseconds."""

    def _predicate(response: Response) -> bool:
        return response.latency_ms < ms

    return _predicate
