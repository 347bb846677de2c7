"""Tests for the token-bucket rate limiter."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from loadcheck._internal.errors import ConfigError
from loadcheck.engine.rate_limiter import TokenBucketRateLimiter
from loadcheck.engine.worker import Deadline


class TestTokenBucketInit:
    def test_default_capacity_equals_rate(self) -> None:
        assert TokenBucketRateLimiter(rate=10.0).capacity == 10.0

    def test_default_capacity_at_least_one(self) -> None:
        assert TokenBucketRateLimiter(rate=0.5).capacity == 1.0

    def test_custom_capacity(self) -> None:
        assert TokenBucketRateLimiter(rate=10.0, capacity=5.0).capacity == 5.0

    @pytest.mark.parametrize("rate", [0.0, -1.0])
    def test_rejects_non_positive_rate(self, rate: float) -> None:
        with pytest.raises(ConfigError, match="positive"):
            TokenBucketRateLimiter(rate=rate)

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ConfigError, match="positive"):
            TokenBucketRateLimiter(rate=1.0, capacity=0.0)


class TestTokenBucketAcquire:
    async def test_burst_is_immediate(self) -> None:
        limiter = TokenBucketRateLimiter(rate=5.0)
        start = time.monotonic()
        for _ in range(5):
            assert await limiter.acquire()
        assert time.monotonic() - start < 0.1

    @pytest.mark.timeout(5)
    async def test_waits_for_refill(self) -> None:
        limiter = TokenBucketRateLimiter(rate=10.0, capacity=1.0)
        assert await limiter.acquire()
        start = time.monotonic()
        assert await limiter.acquire()
        assert time.monotonic() - start >= 0.05

    async def test_gives_up_when_token_arrives_after_deadline(self) -> None:
        limiter = TokenBucketRateLimiter(rate=1.0, capacity=1.0)
        assert await limiter.acquire()
        start = time.monotonic()
        assert await limiter.acquire(Deadline.after(0.2)) is False
        assert time.monotonic() - start < 0.05

    async def test_expired_deadline_takes_no_token(self) -> None:
        limiter = TokenBucketRateLimiter(rate=1.0, capacity=1.0)
        assert await limiter.acquire(Deadline.after(0.0)) is False
        # The unused token is still there for the next caller.
        assert await limiter.acquire(Deadline.after(0.1))

    @pytest.mark.timeout(5)
    async def test_waiter_notices_shortened_deadline(self) -> None:
        limiter = TokenBucketRateLimiter(rate=0.5, capacity=1.0)
        deadline = Deadline.after(30.0)
        assert await limiter.acquire(deadline)

        asyncio.get_running_loop().call_later(0.2, deadline.shorten)
        start = time.monotonic()
        assert await limiter.acquire(deadline) is False
        assert time.monotonic() - start < 1.0

    @pytest.mark.timeout(5)
    async def test_queued_waiters_never_outlast_deadline(self) -> None:
        limiter = TokenBucketRateLimiter(rate=2.0, capacity=1.0)
        deadline = Deadline.after(0.6)
        start = time.monotonic()
        results = await asyncio.gather(*(limiter.acquire(deadline) for _ in range(10)))
        # One token up front and one refill per half second.
        assert results.count(True) == 2
        assert time.monotonic() - start < 1.0

    @pytest.mark.timeout(5)
    def test_shared_between_threads(self) -> None:
        limiter = TokenBucketRateLimiter(rate=20.0, capacity=1.0)
        results: list[bool] = []

        def _take() -> None:
            results.append(asyncio.run(limiter.acquire()))

        threads = [threading.Thread(target=_take) for _ in range(4)]
        start = time.monotonic()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results == [True] * 4
        assert time.monotonic() - start >= 0.1

    @pytest.mark.timeout(5)
    async def test_concurrent_acquires_respect_rate(self) -> None:
        limiter = TokenBucketRateLimiter(rate=20.0, capacity=1.0)
        start = time.monotonic()
        results = await asyncio.gather(*(limiter.acquire() for _ in range(5)))
        assert all(results)
        # One token up front, four refilled at 20/s.
        assert time.monotonic() - start >= 0.15
