"""
Tests for the sliding window rate limiters.

A fake clock drives the window so tests never sleep.
"""

import pytest

from app.config import settings
from app.services.rate_limit import RateLimiters, SlidingWindowLimiter, get_rate_limiters


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> SlidingWindowLimiter:
    return SlidingWindowLimiter("test", max_requests=3, window_seconds=60, clock=clock)


class TestSlidingWindowLimiter:
    """Tests for SlidingWindowLimiter."""

    async def test_allows_up_to_limit(self, limiter):
        decisions = [await limiter.hit("1.2.3.4") for _ in range(3)]

        assert all(decision.allowed for decision in decisions)
        assert [decision.remaining for decision in decisions] == [2, 1, 0]

    async def test_blocks_over_limit(self, limiter):
        for _ in range(3):
            await limiter.hit("1.2.3.4")

        decision = await limiter.hit("1.2.3.4")

        assert not decision.allowed
        assert decision.remaining == 0
        assert decision.limit == 3
        assert 1 <= decision.retry_after_seconds <= 61

    async def test_keys_are_independent(self, limiter):
        for _ in range(3):
            await limiter.hit("1.2.3.4")

        assert (await limiter.hit("5.6.7.8")).allowed

    async def test_window_slides(self, limiter, clock):
        await limiter.hit("k")
        clock.advance(30)
        await limiter.hit("k")
        await limiter.hit("k")
        assert not (await limiter.hit("k")).allowed

        # Oldest hit leaves the window
        clock.advance(31)
        assert (await limiter.hit("k")).allowed
        assert not (await limiter.hit("k")).allowed

    async def test_retry_after_counts_down(self, limiter, clock):
        for _ in range(3):
            await limiter.hit("k")
        clock.advance(50)

        decision = await limiter.hit("k")

        assert decision.retry_after_seconds == 11

    async def test_blocked_hit_not_recorded(self, limiter, clock):
        for _ in range(3):
            await limiter.hit("k")
        for _ in range(10):
            await limiter.hit("k")

        clock.advance(61)
        assert (await limiter.hit("k")).remaining == 2

    async def test_undo_returns_slot(self, limiter):
        for _ in range(3):
            await limiter.hit("k")

        await limiter.undo("k")

        assert (await limiter.hit("k")).allowed

    async def test_undo_unknown_key_is_noop(self, limiter):
        await limiter.undo("never-seen")

    async def test_reset_clears_all_keys(self, limiter):
        for _ in range(3):
            await limiter.hit("k")

        await limiter.reset()

        assert (await limiter.hit("k")).allowed

    async def test_idle_keys_cleaned_up(self, limiter, clock):
        await limiter.hit("idle")
        clock.advance(120)

        await limiter.hit("active")

        assert "idle" not in limiter._log
        assert "active" in limiter._log


class TestRateLimiters:
    """Named limiters built from settings."""

    def test_limits_from_settings(self):
        limiters = RateLimiters(settings)

        assert limiters.general.max_requests == 100
        assert limiters.auth.max_requests == 5
        assert limiters.auth.window_seconds == 900
        assert limiters.admin.max_requests == 20
        assert limiters.copy.max_requests == 10
        assert limiters.copy.window_seconds == 3600

    def test_messages(self):
        limiters = RateLimiters(settings)

        assert limiters.auth.message == "Too many login attempts, please try again after 15 minutes."
        assert limiters.copy.message == "Copy limit reached. Please wait before copying more API keys."

    def test_get_by_name(self):
        limiters = RateLimiters(settings)

        assert limiters.get("copy") is limiters.copy

    def test_get_unknown_name(self):
        with pytest.raises(KeyError):
            RateLimiters(settings).get("reset")

    def test_global_is_shared(self):
        assert get_rate_limiters() is get_rate_limiters()
