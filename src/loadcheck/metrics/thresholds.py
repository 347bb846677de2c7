"""Pass/fail judgement of a finished run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadcheck.metrics.models import NO_DATA

if TYPE_CHECKING:
    from loadcheck.metrics.models import PassRate, RunSummary


@dataclass(frozen=True)
class ThresholdResult:
    """Verdict of the check pass-rate threshold.

    Attributes:
        passed: Whether the run met the threshold.
        pass_rate: Observed aggregate pass rate, or NO_DATA.
        threshold: Required minimum pass rate.
    """

    passed: bool
    pass_rate: PassRate
    threshold: float

    def describe(self) -> str:
        """Return a one-line, human-readable verdict."""
        if self.pass_rate is NO_DATA:
            return f"no checks were evaluated (threshold {self.threshold:.2%} not applied)"
        verdict = "meets" if self.passed else "is below"
        return f"check pass rate {self.pass_rate:.2%} {verdict} threshold {self.threshold:.2%}"


def evaluate_threshold(summary: RunSummary, threshold: float) -> ThresholdResult:
    """Compare the aggregate check pass rate of ``summary`` with ``threshold``.

    A run in which no check was evaluated (for example a zero-length run)
    has nothing that failed and is treated as passing.

    Args:
        summary: Finished run summary.
        threshold: Minimum pass rate, 0.0 to 1.0.

    Returns:
        The verdict.
    """
    pass_rate = summary.pass_rate
    if pass_rate is NO_DATA:
        return ThresholdResult(passed=True, pass_rate=pass_rate, threshold=threshold)
    return ThresholdResult(passed=pass_rate >= threshold, pass_rate=pass_rate, threshold=threshold)
