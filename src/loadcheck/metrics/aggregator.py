"""Thread-safe aggregation of request outcomes into a run summary.

Virtual users submit every ``RequestOutcome`` as soon as it is produced.
The ``ResultAggregator`` keeps running counters under a single lock and
turns them into a frozen ``RunSummary`` once the run is over.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from types import MappingProxyType
from typing import TYPE_CHECKING

from loadcheck._internal.errors import EngineError
from loadcheck._internal.logging import get_logger
from loadcheck.metrics.histogram import LatencyHistogram
from loadcheck.metrics.models import CheckStats, RunProgress, RunSummary, rate

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadcheck._internal.types import StatusCounts
    from loadcheck.metrics.models import RequestOutcome

logger = get_logger("metrics.aggregator")


class ResultAggregator:
    """Collects outcomes from all virtual users.

    ``submit`` may be called concurrently from any number of coroutines or
    threads. ``finalize`` freezes the counters into a ``RunSummary``; after
    that, further submissions are rejected so that the summary never
    drifts from what was reported.

    Args:
        check_names: Check names known up front. They appear in the summary
            with a NO_DATA pass rate even if no outcome evaluated them.
    """

    def __init__(self, check_names: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._started_at = time.monotonic()
        self._summary: RunSummary | None = None

        self._histogram = LatencyHistogram()
        self._total_requests = 0
        self._checks_passed = 0
        self._checks_failed = 0
        self._check_passes: dict[str, int] = dict.fromkeys(check_names, 0)
        self._check_fails: dict[str, int] = dict.fromkeys(self._check_passes, 0)
        self._status_codes: StatusCounts = defaultdict(int)
        self._errors_by_type: dict[str, int] = defaultdict(int)
        self._network_errors = 0
        self._scenario_errors = 0
        self._requests_per_vu: dict[int, int] = defaultdict(int)

    @property
    def finalized(self) -> bool:
        """Return True once ``finalize`` has been called."""
        return self._summary is not None

    def submit(self, outcome: RequestOutcome) -> None:
        """Count one outcome.

        Args:
            outcome: The outcome to record.

        Raises:
            EngineError: If the aggregator has already been finalized.
        """
        with self._lock:
            if self._summary is not None:
                msg = f"Outcome from virtual user {outcome.vu_id} submitted after finalize()"
                raise EngineError(msg)

            self._total_requests += 1
            self._requests_per_vu[outcome.vu_id] += 1
            self._status_codes[outcome.status_code] += 1
            self._histogram.record_ms(outcome.latency_ms)

            if outcome.error is not None:
                self._network_errors += 1
                # "ClientConnectorError: Cannot connect..." -> "ClientConnectorError"
                self._errors_by_type[outcome.error.split(":")[0].strip()] += 1

            for result in outcome.checks:
                self._check_passes.setdefault(result.name, 0)
                self._check_fails.setdefault(result.name, 0)
                if result.passed:
                    self._checks_passed += 1
                    self._check_passes[result.name] += 1
                else:
                    self._checks_failed += 1
                    self._check_fails[result.name] += 1

    def record_scenario_error(self, vu_id: int, exc: BaseException) -> None:
        """Count an iteration that raised inside scenario code."""
        with self._lock:
            if self._summary is not None:
                return
            self._scenario_errors += 1
        logger.debug("Scenario error in virtual user %d: %s", vu_id, exc)

    def progress(self, elapsed_seconds: float | None = None) -> RunProgress:
        """Return the running counters without finalizing.

        Args:
            elapsed_seconds: Seconds since the run started. Defaults to the
                time since the aggregator was created.
        """
        if elapsed_seconds is None:
            elapsed_seconds = time.monotonic() - self._started_at
        with self._lock:
            total = self._total_requests
            passed = self._checks_passed
            failed = self._checks_failed
        return RunProgress(
            elapsed_seconds=elapsed_seconds,
            total_requests=total,
            checks_passed=passed,
            checks_failed=failed,
            requests_per_second=total / elapsed_seconds if elapsed_seconds > 0 else 0.0,
        )

    def finalize(self, *, duration_seconds: float, virtual_users: int) -> RunSummary:
        """Freeze the counters into a ``RunSummary``.

        Must only be called after every virtual user has exited. Repeated
        calls return the summary built by the first call.

        Args:
            duration_seconds: Wall-clock length of the run.
            virtual_users: Configured number of virtual users.

        Returns:
            The final run summary.
        """
        with self._lock:
            if self._summary is not None:
                return self._summary

            checks = {
                name: CheckStats(passes=self._check_passes[name], fails=self._check_fails[name])
                for name in self._check_passes
            }
            self._summary = RunSummary(
                total_requests=self._total_requests,
                checks_passed=self._checks_passed,
                checks_failed=self._checks_failed,
                per_check_pass_rate=MappingProxyType(
                    {name: rate(stats.passes, stats.total) for name, stats in checks.items()}
                ),
                checks=MappingProxyType(checks),
                latency=self._histogram.stats(),
                status_codes=MappingProxyType(dict(sorted(self._status_codes.items()))),
                errors_by_type=MappingProxyType(dict(self._errors_by_type)),
                network_errors=self._network_errors,
                scenario_errors=self._scenario_errors,
                requests_per_vu=MappingProxyType(dict(sorted(self._requests_per_vu.items()))),
                virtual_users=virtual_users,
                duration_seconds=duration_seconds,
                requests_per_second=(
                    self._total_requests / duration_seconds if duration_seconds > 0 else 0.0
                ),
            )

        logger.debug(
            "Aggregator finalized: requests=%d, checks_passed=%d, checks_failed=%d",
            self._summary.total_requests,
            self._summary.checks_passed,
            self._summary.checks_failed,
        )
        return self._summary
