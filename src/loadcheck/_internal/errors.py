"""Custom exception hierarchy for loadcheck."""

from __future__ import annotations


class LoadCheckError(Exception):
    """Base exception for all loadcheck errors.

    All custom exceptions in loadcheck inherit from this class, making it
    easy to catch any loadcheck-specific error with a single except clause.
    """


class ConfigError(LoadCheckError):
    """Raised when configuration is invalid or missing.

    Always raised before the first request is sent.

    Examples:
        - ``LOAD_TEST_URI`` is unset or not an http(s) URL.
        - ``--vus`` is zero or the duration string cannot be parsed.
        - The TOML options file is unreadable or has unknown keys.
    """


class ScenarioError(LoadCheckError):
    """Raised when a scenario definition is invalid.

    Examples:
        - A function decorated with ``@scenario`` is not a coroutine function.
        - Two checks in the same scenario share a name.
        - A scenario file cannot be imported or defines no scenario.
    """


class EngineError(LoadCheckError):
    """Raised when the load engine itself fails.

    Per-request failures never surface as ``EngineError``; they are recorded
    in the run summary instead.
    """


class NetworkError(LoadCheckError):
    """Raised by ``HttpClient`` when a request fails at the transport level.

    Scenarios convert it into a status-0 response so that it is counted as
    a failed check rather than aborting the virtual user.

    Attributes:
        method: HTTP method of the failed request.
        url: Full request URL.
        latency_ms: Time spent before the failure, in milliseconds.
    """

    def __init__(self, message: str, *, method: str, url: str, latency_ms: float) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.latency_ms = latency_ms
