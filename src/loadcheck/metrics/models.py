"""Outcome and summary dataclasses for loadcheck."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from loadcheck.dsl.checks import CheckResult

__all__ = [
    "NO_DATA",
    "CheckStats",
    "LatencyStats",
    "NoData",
    "PassRate",
    "RequestOutcome",
    "RunProgress",
    "RunSummary",
]


class NoData(Enum):
    """Marker for a rate whose denominator is zero."""

    NO_DATA = "no data"

    def __str__(self) -> str:
        return self.value


NO_DATA = NoData.NO_DATA

# Fraction in [0.0, 1.0], or NO_DATA when nothing was measured.
PassRate = float | NoData


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class RequestOutcome:
    """Result of one scenario iteration, submitted to the aggregator.

    Attributes:
        vu_id: Virtual user that produced the outcome.
        name: Scenario name.
        method: HTTP method.
        url: Full request URL.
        status_code: HTTP status code (0 if the request failed).
        latency_ms: Response time in milliseconds.
        timestamp: Unix time at which the request completed.
        checks: Check results, in scenario order.
        error: Transport error description, None on success.
    """

    vu_id: int
    name: str
    method: str
    url: str
    status_code: int
    latency_ms: float
    timestamp: float
    checks: tuple[CheckResult, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class CheckStats:
    """Pass/fail counters for one named check."""

    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        """Return the number of evaluations."""
        return self.passes + self.fails

    @property
    def pass_rate(self) -> PassRate:
        """Return ``passes / total`` or NO_DATA when never evaluated."""
        return rate(self.passes, self.total)


@dataclass(frozen=True)
class LatencyStats:
    """Latency distribution in milliseconds. All zero when empty."""

    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True)
class RunProgress:
    """Running counters, readable while the run is in progress.

    Attributes:
        elapsed_seconds: Seconds since the run started.
        total_requests: Outcomes counted so far.
        checks_passed: Passed check evaluations so far.
        checks_failed: Failed check evaluations so far.
        requests_per_second: Average throughput so far.
    """

    elapsed_seconds: float
    total_requests: int
    checks_passed: int
    checks_failed: int
    requests_per_second: float


@dataclass(frozen=True)
class RunSummary:
    """Final, immutable statistics of a run.

    Attributes:
        total_requests: Number of outcomes counted.
        checks_passed: Number of passed check evaluations.
        checks_failed: Number of failed check evaluations.
        per_check_pass_rate: Check name to pass rate (or NO_DATA).
        checks: Check name to pass/fail counters.
        latency: Latency distribution over all requests.
        status_codes: Response count per HTTP status code (0 = no response).
        errors_by_type: Transport failure count per exception type.
        network_errors: Number of requests that failed at transport level.
        scenario_errors: Iterations aborted by an exception in scenario code.
        requests_per_vu: Outcome count per virtual user id.
        virtual_users: Configured number of virtual users.
        duration_seconds: Wall-clock length of the run.
        requests_per_second: Average throughput.
    """

    total_requests: int = 0
    checks_passed: int = 0
    checks_failed: int = 0
    per_check_pass_rate: Mapping[str, PassRate] = field(default_factory=_empty_mapping)
    checks: Mapping[str, CheckStats] = field(default_factory=_empty_mapping)
    latency: LatencyStats = field(default_factory=LatencyStats)
    status_codes: Mapping[int, int] = field(default_factory=_empty_mapping)
    errors_by_type: Mapping[str, int] = field(default_factory=_empty_mapping)
    network_errors: int = 0
    scenario_errors: int = 0
    requests_per_vu: Mapping[int, int] = field(default_factory=_empty_mapping)
    virtual_users: int = 0
    duration_seconds: float = 0.0
    requests_per_second: float = 0.0

    @property
    def pass_rate(self) -> PassRate:
        """Return the aggregate check pass rate, or NO_DATA if none ran."""
        return rate(self.checks_passed, self.checks_passed + self.checks_failed)

    @property
    def failed_checks(self) -> dict[str, CheckStats]:
        """Return the checks that failed at least once."""
        return {name: stats for name, stats in self.checks.items() if stats.fails}


def rate(numerator: int, denominator: int) -> PassRate:
    """Return ``numerator / denominator``, or NO_DATA if the denominator is 0."""
    if denominator == 0:
        return NO_DATA
    return numerator / denominator
