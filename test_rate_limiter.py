"""
Rate Limiter Tests

Uses a controllable clock so refill behaviour is deterministic.
"""

import asyncio

import pytest

from core.utils.rate_limiter import RateLimitConfig, TokenBucketRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestRateLimitConfig:

    def test_rejects_invalid_values(self):
        with pytest.raises(ValueError):
            RateLimitConfig(max_requests=0, window_ms=1000)
        with pytest.raises(ValueError):
            RateLimitConfig(max_requests=10, window_ms=0)


class TestTokenBucket:

    def test_starts_full(self):
        limiter = TokenBucketRateLimiter(RateLimitConfig(5, 1000), clock=FakeClock())
        assert limiter.available_tokens == 5
        assert limiter.can_acquire()

    def test_acquire_consumes_tokens(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(RateLimitConfig(3, 1000), clock=clock)

        async def run():
            for _ in range(3):
                await limiter.acquire()

        asyncio.run(run())
        assert limiter.available_tokens == 0
        assert not limiter.can_acquire()

    def test_refills_continuously_and_caps(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(RateLimitConfig(10, 1000), clock=clock)

        async def drain():
            for _ in range(10):
                await limiter.acquire()

        asyncio.run(drain())
        clock.now = 0.25
        assert limiter.available_tokens == pytest.approx(2.5)

        clock.now = 60.0
        assert limiter.available_tokens == 10

    def test_acquire_waits_for_a_token(self):
        """A drained bucket delays the next caller instead of rejecting it."""
        limiter = TokenBucketRateLimiter(RateLimitConfig(max_requests=2, window_ms=100))

        async def run():
            loop = asyncio.get_running_loop()
            start = loop.time()
            for _ in range(3):
                await limiter.acquire()
            return loop.time() - start

        elapsed = asyncio.run(run())
        # Third token refills after 50ms
        assert elapsed >= 0.04

    def test_concurrent_waiters_never_overspend(self):
        limiter = TokenBucketRateLimiter(RateLimitConfig(max_requests=5, window_ms=50))
        acquired = []

        async def worker(n):
            await limiter.acquire()
            acquired.append(n)

        async def run():
            await asyncio.gather(*(worker(n) for n in range(8)))

        asyncio.run(run())
        assert sorted(acquired) == list(range(8))
        assert limiter.available_tokens < 5
