"""Unit tests for the keyed token bucket limiter."""

import pytest

from raidbot.core.errors import RateLimitWaitError
from raidbot.core.resilience.rate_limit import RateLimitConfig, RateLimitResult, TokenBucketLimiter


@pytest.fixture
def limiter(clock):
    return TokenBucketLimiter(RateLimitConfig(requests_per_minute=60, burst_limit=3), clock=clock)


class TestTokenBucket:
    def test_burst_then_reject(self, limiter):
        results = [limiter.acquire("a") for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert results[-1].remaining == 0
        assert results[-1].reset_in == pytest.approx(1.0)

    def test_refill_over_time(self, limiter, clock):
        for _ in range(3):
            limiter.acquire("a")
        assert limiter.acquire("a").allowed is False

        clock.advance(1.0)
        assert limiter.acquire("a").allowed is True

    def test_refill_capped_at_burst(self, limiter, clock):
        limiter.acquire("a")
        clock.advance(600.0)
        assert limiter.check("a").remaining == 3

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.acquire("a")
        assert limiter.acquire("a").allowed is False
        assert limiter.acquire("b").allowed is True

    def test_check_does_not_consume(self, limiter):
        for _ in range(5):
            assert limiter.check("a").allowed is True
        assert limiter.check("a").remaining == 3

    def test_disabled_always_allows(self, clock):
        limiter = TokenBucketLimiter(
            RateLimitConfig(requests_per_minute=1, burst_limit=1, enabled=False), clock=clock
        )
        assert all(limiter.acquire("a").allowed for _ in range(10))

    def test_acquire_or_raise(self, limiter):
        for _ in range(3):
            limiter.acquire_or_raise("a")
        with pytest.raises(RateLimitWaitError) as exc_info:
            limiter.acquire_or_raise("a")
        assert exc_info.value.wait_needed == pytest.approx(1.0)
        assert exc_info.value.limit == 60
        assert exc_info.value.headers["X-RateLimit-Remaining"] == "0"

    def test_idle_buckets_are_dropped(self, limiter, clock):
        for n in range(1000):
            limiter.acquire(f"client-{n}")
        assert limiter.tracked_keys == 1000

        clock.advance(3600.0)
        limiter.acquire("fresh")

        assert limiter.tracked_keys == 1

    def test_drained_buckets_survive_sweep(self, limiter, clock):
        for _ in range(3):
            limiter.acquire("busy")
        limiter.acquire("idle")

        clock.advance(2.0)
        limiter.acquire("busy")
        limiter.acquire("busy")

        clock.advance(1.0)
        assert limiter.check("busy").remaining == 1
        assert limiter.tracked_keys == 1

    def test_check_does_not_track_unknown_keys(self, limiter):
        limiter.check("stranger")
        assert limiter.tracked_keys == 0

    def test_reset_single_key(self, limiter):
        for _ in range(3):
            limiter.acquire("a")
            limiter.acquire("b")
        limiter.reset("a")
        assert limiter.acquire("a").allowed is True
        assert limiter.acquire("b").allowed is False

    def test_reset_all(self, limiter):
        for _ in range(3):
            limiter.acquire("a")
        limiter.reset()
        assert limiter.check("a").remaining == 3


class TestRateLimitResult:
    def test_headers(self):
        headers = RateLimitResult(allowed=False, remaining=0, reset_in=12.4, limit=10).to_headers()
        assert headers == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "12",
        }
