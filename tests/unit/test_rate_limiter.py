"""
Tests for the sliding-window rate limiter.
"""

import asyncio

import pytest

from utils.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestRateLimiterWindow:
    """Capacity and window behaviour for a single key."""

    async def test_capacity_plus_one_rejects_only_the_last(self, clock):
        """capacity+1 requests in one window: exactly one rejection, the last one."""
        limiter = RateLimiter(max_requests=5, window_seconds=10, clock=clock)

        results = [await limiter.check("/api/chat/c1-user_1") for _ in range(6)]

        assert results == [True] * 5 + [False]

    async def test_rejection_does_not_consume_capacity(self, clock):
        """Rejected requests are not counted, so the window drains on schedule."""
        limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)
        key = "/api/chat/c1-user_1"

        assert await limiter.check(key)
        clock.advance(5)
        assert await limiter.check(key)

        for _ in range(10):
            assert not await limiter.check(key)

        assert len(limiter._timestamps[key]) == 2

        # First admission leaves the window; exactly one slot opens
        clock.advance(5)
        assert await limiter.check(key)
        assert not await limiter.check(key)

    async def test_window_resets_after_expiry(self, clock):
        limiter = RateLimiter(max_requests=3, window_seconds=2, clock=clock)
        key = "/api/chat/c1-user_1"

        for _ in range(3):
            assert await limiter.check(key)
        assert not await limiter.check(key)

        clock.advance(2.5)
        assert await limiter.check(key)

    async def test_remaining_count(self, clock):
        limiter = RateLimiter(max_requests=3, window_seconds=10, clock=clock)

        assert await limiter.check_rate_limit("k") == (True, 2)
        assert await limiter.check_rate_limit("k") == (True, 1)
        assert await limiter.check_rate_limit("k") == (True, 0)
        assert await limiter.check_rate_limit("k") == (False, 0)


class TestRateLimiterKeys:
    """Limits are per user and per endpoint, not global."""

    async def test_keys_are_independent(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)

        assert await limiter.check("/api/chat/c1-user_1")
        assert not await limiter.check("/api/chat/c1-user_1")

        assert await limiter.check("/api/chat/c1-user_2")
        assert await limiter.check("/api/chat/c2-user_1")

    async def test_reset_clears_key(self, clock):
        limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)

        assert await limiter.check("k")
        limiter.reset("k")
        assert await limiter.check("k")

    async def test_idle_keys_are_evicted(self, clock):
        """One entry per route-user pair must not accumulate forever."""
        limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)

        for i in range(20):
            assert await limiter.check(f"/api/chat/c{i}-user_1")
        assert limiter.tracked_keys == 20

        clock.advance(11)
        assert await limiter.check("/api/chat/c0-user_2")

        assert limiter.tracked_keys == 1

    async def test_active_keys_survive_sweep(self, clock):
        limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)

        assert await limiter.check("old")
        clock.advance(6)
        assert await limiter.check("recent")
        assert await limiter.check("recent")

        clock.advance(5)
        assert await limiter.check("other")

        assert limiter.tracked_keys == 2
        assert not await limiter.check("recent")


class TestRateLimiterConcurrency:

    async def test_concurrent_checks_never_over_admit(self, clock):
        """Concurrent requests for one key admit exactly the capacity."""
        limiter = RateLimiter(max_requests=7, window_seconds=10, clock=clock)

        results = await asyncio.gather(*[limiter.check("k") for _ in range(50)])

        assert sum(results) == 7
        assert len(limiter._timestamps["k"]) == 7


class TestRateLimiterPolicies:

    async def test_zero_capacity_disables_limiting(self, clock):
        limiter = RateLimiter(max_requests=0, window_seconds=10, clock=clock)

        assert all([await limiter.check("k") for _ in range(100)])

    async def test_fails_closed_when_counter_unavailable(self):
        """A broken backing store denies the request instead of allowing it."""

        def broken_clock() -> float:
            raise RuntimeError("counter store unreachable")

        limiter = RateLimiter(max_requests=5, window_seconds=10, clock=broken_clock)

        assert await limiter.check("k") is False
        assert await limiter.check_rate_limit("k") == (False, 0)
