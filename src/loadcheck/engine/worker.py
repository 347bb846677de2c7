"""Virtual user loop, its worker thread entry point and the shared run deadline."""

from __future__ import annotations

import asyncio
import contextlib
import sys
import time
from typing import TYPE_CHECKING

from loadcheck._internal.logging import get_logger
from loadcheck.dsl.http_client import HttpClient

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadcheck._internal.types import Headers
    from loadcheck.dsl.scenario import Scenario
    from loadcheck.dsl.target import ValidatedTarget
    from loadcheck.engine.rate_limiter import TokenBucketRateLimiter
    from loadcheck.metrics.aggregator import ResultAggregator

logger = get_logger("engine.worker")


def install_uvloop() -> None:
    """Install uvloop as the default event loop policy if available.

    Falls back silently to the default asyncio event loop on Windows
    or if uvloop is not installed.
    """
    if sys.platform == "win32":
        return

    try:
        import uvloop

        uvloop.install()
        logger.debug("uvloop installed as event loop policy")
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")


class Deadline:
    """Absolute point in monotonic time at which the run ends.

    Shared by every virtual user of a run. ``shorten`` may be called from
    any thread (e.g. a signal handler) to end the run early; the deadline
    only ever moves earlier.

    Args:
        at: Deadline as a ``clock()`` value.
        clock: Monotonic clock. Defaults to ``time.monotonic``.
    """

    def __init__(self, at: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._at = at
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> Deadline:
        """Return a deadline ``seconds`` from now."""
        return cls(clock() + seconds, clock)

    @property
    def at(self) -> float:
        """Return the deadline as a clock value."""
        return self._at

    def expired(self) -> bool:
        """Return True once the clock has reached the deadline."""
        return self._clock() >= self._at

    def remaining(self) -> float:
        """Return the seconds left, never negative."""
        return max(0.0, self._at - self._clock())

    def shorten(self, at: float | None = None) -> None:
        """Move the deadline to ``at`` (default: now) if that is earlier."""
        new_at = self._clock() if at is None else at
        # Single float assignment; safe without a lock under the GIL.
        self._at = min(self._at, new_at)


class VirtualUser:
    """One simulated client repeatedly executing a scenario.

    The scheduler runs every virtual user on its own thread with its own
    event loop (``run_in_thread``), so a scenario that blocks only stalls
    itself. Owns its own ``HttpClient`` (and thus its connection pool).
    The loop re-checks the deadline before every iteration and submits
    each outcome to the aggregator as soon as it is produced. An exception
    escaping the scenario is logged and counted, and the loop carries on.

    Attributes:
        vu_id: Identifier used to attribute outcomes.
        iterations: Number of outcomes submitted so far.
        error: Exception that ended the run outside the iteration guard,
            None otherwise.
    """

    def __init__(
        self,
        vu_id: int,
        target: ValidatedTarget,
        aggregator: ResultAggregator,
        *,
        headers: Headers | None = None,
        request_timeout: float = 30.0,
        rate_limiter: TokenBucketRateLimiter | None = None,
    ) -> None:
        self.vu_id = vu_id
        self.iterations = 0
        self._target = target
        self._aggregator = aggregator
        self._headers = headers
        self._request_timeout = request_timeout
        self._rate_limiter = rate_limiter
        self.error: Exception | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None

    async def run(self, scenario: Scenario, deadline: Deadline) -> None:
        """Execute ``scenario`` in a loop until ``deadline`` expires.

        Args:
            scenario: Scenario to execute each iteration.
            deadline: Shared run deadline.
        """
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.current_task()
        if deadline.expired():
            return

        async with HttpClient(
            self._target,
            self._headers,
            vu_id=self.vu_id,
            timeout=self._request_timeout,
        ) as client:
            while not deadline.expired():
                if self._rate_limiter is not None:
                    acquired = await self._rate_limiter.acquire(deadline)
                    if not acquired or deadline.expired():
                        break

                try:
                    outcome = await scenario.execute(client)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning(
                        "Scenario %s raised in virtual user %d",
                        scenario.name,
                        self.vu_id,
                        exc_info=True,
                    )
                    self._aggregator.record_scenario_error(self.vu_id, exc)
                else:
                    self._aggregator.submit(outcome)
                    self.iterations += 1

                # Let a pending cancel through even if the scenario never awaited.
                await asyncio.sleep(0)

        logger.debug("Virtual user %d finished after %d iterations", self.vu_id, self.iterations)

    def run_in_thread(self, scenario: Scenario, deadline: Deadline) -> None:
        """Worker thread entry point: ``run`` on a fresh event loop.

        An exception escaping ``run`` is logged and kept in ``error`` for
        the scheduler to report once every worker has been joined.

        Args:
            scenario: Scenario to execute each iteration.
            deadline: Shared run deadline.
        """
        try:
            asyncio.run(self.run(scenario, deadline))
        except asyncio.CancelledError:
            logger.warning("Virtual user %d was cancelled", self.vu_id)
        except Exception as exc:
            self.error = exc
            logger.exception("Virtual user %d failed", self.vu_id)

    def cancel(self) -> None:
        """Cancel a running ``run`` from any thread.

        Takes effect at the virtual user's next await, which is at the
        latest the end of its in-flight request.
        """
        loop, task = self._loop, self._task
        if loop is None or task is None:
            return
        # The loop may close between the check and the call.
        with contextlib.suppress(RuntimeError):
            if not loop.is_closed():
                loop.call_soon_threadsafe(task.cancel)
