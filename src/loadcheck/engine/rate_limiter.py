"""Token-bucket rate limiter shared by the virtual users of a run."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import TYPE_CHECKING

from loadcheck._internal.errors import ConfigError

if TYPE_CHECKING:
    from loadcheck.engine.worker import Deadline

# Longest uninterrupted sleep while waiting for a reserved token, so that a
# shortened deadline is noticed promptly.
_POLL_INTERVAL_SECONDS = 0.05


class TokenBucketRateLimiter:
    """Token bucket capping the global request rate.

    Every iteration of every virtual user takes one token. Tokens are
    replenished at ``rate`` per second, up to ``capacity`` (the allowed
    burst). Virtual users run on their own threads and event loops, so the
    bucket is guarded by a ``threading.Lock`` that is only held while a
    token is reserved, never while waiting for it.

    A caller whose token would only arrive after the deadline does not
    reserve it, and a caller already waiting gives up as soon as the
    deadline expires, so rate limiting never delays the end of a run.

    Attributes:
        rate: Tokens added per second.
        capacity: Maximum token count (burst capacity).
    """

    def __init__(self, rate: float, capacity: float | None = None) -> None:
        """Initialize the rate limiter.

        Args:
            rate: Tokens per second. Must be positive.
            capacity: Maximum tokens. Defaults to ``max(rate, 1)`` (one
                second of burst).

        Raises:
            ConfigError: If rate or capacity is not positive.
        """
        if rate <= 0:
            msg = f"rps must be positive, got {rate}"
            raise ConfigError(msg)
        if capacity is not None and capacity <= 0:
            msg = f"burst capacity must be positive, got {capacity}"
            raise ConfigError(msg)

        self.rate = rate
        self.capacity = capacity if capacity is not None else max(rate, 1.0)
        self._tokens = self.capacity
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

    async def acquire(self, deadline: Deadline | None = None) -> bool:
        """Take one token, waiting until it is available.

        The token is reserved up front, which keeps tokens handed out in
        arrival order. The remaining time is read after the reservation
        lock is taken, so callers queued behind each other never wait on a
        stale budget.

        Args:
            deadline: Run deadline. None waits as long as needed.

        Returns:
            True if a token was taken, False if the deadline expired or
            would pass before the token became available.
        """
        with self._lock:
            if deadline is not None and deadline.expired():
                return False
            now = time.monotonic()
            self._refill(now)
            wait_time = max(0.0, (1.0 - self._tokens) / self.rate)
            if deadline is not None and wait_time > deadline.remaining():
                return False
            # The balance may go negative: later callers queue behind this one.
            self._tokens -= 1.0
            ready_at = now + wait_time

        while True:
            left = ready_at - time.monotonic()
            if left <= 0:
                break
            if deadline is not None and deadline.expired():
                return False
            await asyncio.sleep(min(left, _POLL_INTERVAL_SECONDS))
        return deadline is None or not deadline.expired()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_refill = now
