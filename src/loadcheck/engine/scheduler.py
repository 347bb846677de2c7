"""Run scheduler: starts the virtual users, waits for the deadline, summarises."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
import threading
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadcheck._internal.errors import EngineError
from loadcheck._internal.logging import get_logger
from loadcheck._internal.units import format_duration
from loadcheck.dsl.scenario import HttpGetScenario
from loadcheck.engine.rate_limiter import TokenBucketRateLimiter
from loadcheck.engine.worker import Deadline, VirtualUser, install_uvloop
from loadcheck.metrics.aggregator import ResultAggregator

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadcheck._internal.config import ScenarioConfig
    from loadcheck.dsl.scenario import Scenario
    from loadcheck.metrics.models import RunProgress, RunSummary

logger = get_logger("engine.scheduler")

# Extra time, on top of the request timeout, that virtual users get to finish
# their in-flight request after the deadline before they are cancelled.
_SHUTDOWN_GRACE_SECONDS = 5.0

# How often the scheduler checks whether the worker threads have exited.
_JOIN_POLL_SECONDS = 0.05


class RunState(Enum):
    """Lifecycle of a scheduler run."""

    CREATED = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class Scheduler:
    """Runs a fixed pool of virtual users for the configured duration.

    Every virtual user is an independent worker: a thread running its own
    event loop, started at run begin and joined at run end. The
    scheduler's own loop only waits for them, reports progress and
    handles signals. All virtual users share one deadline, one scenario,
    one aggregator and the optional rate limiter; nothing else is shared
    between them. ``stop()`` moves the
    deadline to now, and every virtual user notices within one iteration.

    State machine: CREATED -> RUNNING -> STOPPING -> COMPLETED
                                      -> FAILED (on error)

    Attributes:
        config: The run configuration.
        scenario: The scenario every virtual user executes.
        aggregator: Sink for all outcomes of the run.
    """

    def __init__(
        self,
        config: ScenarioConfig,
        scenario: Scenario | None = None,
        *,
        aggregator: ResultAggregator | None = None,
        on_progress: Callable[[RunProgress], None] | None = None,
        progress_interval: float = 1.0,
        handle_signals: bool = False,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Validated run configuration.
            scenario: Scenario to run. Defaults to a GET of the target
                checking ``"is status 200"``.
            aggregator: Outcome sink. A new one is created by default.
            on_progress: Optional callback receiving running counters every
                ``progress_interval`` seconds.
            progress_interval: Seconds between progress callbacks.
            handle_signals: Install SIGINT/SIGTERM handlers that call
                ``stop()`` for the duration of the run.
        """
        self.config = config
        self.scenario: Scenario = scenario if scenario is not None else HttpGetScenario()
        self.aggregator = aggregator or ResultAggregator(self.scenario.check_names)
        self._on_progress = on_progress
        self._progress_interval = progress_interval
        self._handle_signals = handle_signals

        self._state = RunState.CREATED
        self._deadline: Deadline | None = None
        self._stop_requested = False
        self._users: list[VirtualUser] = []
        self._threads: list[threading.Thread] = []

    @property
    def state(self) -> RunState:
        """Return the current run state."""
        return self._state

    @property
    def virtual_users(self) -> list[VirtualUser]:
        """Return the virtual users of the current or last run."""
        return list(self._users)

    def run(self) -> RunSummary:
        """Blocking entry point: run the load test on a fresh event loop.

        Returns:
            The final run summary.
        """
        install_uvloop()
        return asyncio.run(self.start())

    async def start(self) -> RunSummary:
        """Run the load test to completion.

        Returns:
            The final run summary.

        Raises:
            EngineError: If the scheduler was already started or a virtual
                user fails outside its iteration guard.
        """
        if self._state is not RunState.CREATED:
            msg = f"Scheduler cannot be started in state {self._state.name}"
            raise EngineError(msg)

        config = self.config
        self._state = RunState.RUNNING
        logger.info(
            "Starting run: scenario=%s, target=%s, vus=%d, duration=%s",
            self.scenario.name,
            config.target_uri,
            config.virtual_users,
            format_duration(config.duration_seconds),
        )

        start_time = time.monotonic()
        self._deadline = Deadline(start_time + config.duration_seconds)
        if self._stop_requested:
            self._deadline.shorten()

        rate_limiter = (
            TokenBucketRateLimiter(config.rate_limit) if config.rate_limit is not None else None
        )
        self._users = [
            VirtualUser(
                vu_id,
                config.target,
                self.aggregator,
                headers=config.headers,
                request_timeout=config.request_timeout,
                rate_limiter=rate_limiter,
            )
            for vu_id in range(1, config.virtual_users + 1)
        ]

        if self._handle_signals:
            self._install_signal_handlers()

        monitor: asyncio.Task[None] | None = None
        try:
            self._threads = [
                threading.Thread(
                    target=user.run_in_thread,
                    args=(self.scenario, self._deadline),
                    name=f"virtual-user-{user.vu_id}",
                    daemon=True,
                )
                for user in self._users
            ]
            for thread in self._threads:
                thread.start()
            logger.debug("Started %d worker threads", len(self._threads))
            if self._on_progress is not None:
                monitor = asyncio.create_task(
                    self._report_progress(start_time), name="progress-monitor"
                )
            await self._join()
        except Exception as exc:
            self._state = RunState.FAILED
            logger.exception("Run failed")
            raise EngineError("Run failed") from exc
        finally:
            # Workers left running by a failure or cancellation end with the run.
            self._deadline.shorten()
            if monitor is not None:
                monitor.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await monitor
            if self._handle_signals:
                self._remove_signal_handlers()

        duration = time.monotonic() - start_time
        summary = self.aggregator.finalize(
            duration_seconds=duration,
            virtual_users=config.virtual_users,
        )
        self._state = RunState.COMPLETED

        logger.info(
            "Run completed: duration=%.1fs, requests=%d, rps=%.1f, p95=%.1fms, "
            "checks_passed=%d, checks_failed=%d",
            duration,
            summary.total_requests,
            summary.requests_per_second,
            summary.latency.p95,
            summary.checks_passed,
            summary.checks_failed,
        )
        return summary

    def stop(self) -> None:
        """Request an early end of the run.

        Safe to call from another thread or a signal handler, and before
        the run starts (the run then ends immediately).
        """
        self._stop_requested = True
        if self._deadline is not None:
            logger.info("Stop requested, ending run after in-flight requests")
            self._deadline.shorten()
        if self._state is RunState.RUNNING:
            self._state = RunState.STOPPING

    async def _join(self) -> None:
        """Wait for every worker thread, cancelling stragglers after the grace period.

        Threads are polled rather than joined so that this event loop stays
        free for progress reports and signal handling.
        """
        assert self._deadline is not None
        users = dict(zip(self._threads, self._users, strict=True))

        give_up_at: float | None = None
        while True:
            pending = [thread for thread in self._threads if thread.is_alive()]
            if not pending:
                break
            if self._deadline.expired():
                # Allow one in-flight request per user past the deadline.
                if give_up_at is None:
                    give_up_at = (
                        time.monotonic() + self.config.request_timeout + _SHUTDOWN_GRACE_SECONDS
                    )
                elif time.monotonic() >= give_up_at:
                    break
            await asyncio.sleep(_JOIN_POLL_SECONDS)

        if self._state is RunState.RUNNING:
            self._state = RunState.STOPPING

        if pending:
            for thread in pending:
                logger.warning("%s did not finish in time, cancelling", thread.name)
                users[thread].cancel()
            cancel_deadline = time.monotonic() + 2.0
            while time.monotonic() < cancel_deadline and any(t.is_alive() for t in pending):
                await asyncio.sleep(_JOIN_POLL_SECONDS)

        for thread, user in users.items():
            if user.error is not None:
                msg = f"{thread.name} crashed: {user.error}"
                raise EngineError(msg) from user.error

    async def _report_progress(self, start_time: float) -> None:
        assert self._deadline is not None
        assert self._on_progress is not None
        while not self._deadline.expired():
            await asyncio.sleep(min(self._progress_interval, self._deadline.remaining()))
            try:
                self._on_progress(self.aggregator.progress(time.monotonic() - start_time))
            except Exception:
                logger.exception("Progress callback failed")

    def _install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to ``stop()``."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self.stop()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Restore default signal handling."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
