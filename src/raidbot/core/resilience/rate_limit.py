"""Token bucket rate limiting for the HTTP endpoint.

One bucket per caller key (client address by default). Tokens refill
continuously at ``requests_per_minute / 60`` per second up to
``burst_limit``.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from raidbot.core.errors.resilience import RateLimitWaitError
from raidbot.core.resilience.models import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit settings.

    Attributes:
        requests_per_minute: Sustained refill rate.
        burst_limit: Bucket capacity.
        enabled: When False every check is allowed.
        reason: Free-text note shown in status output.
    """

    requests_per_minute: int = 30
    burst_limit: int = 10
    enabled: bool = True
    reason: str = ""


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_in: float
    limit: int

    def to_headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": f"{self.reset_in:.0f}",
        }


class _Bucket:
    __slots__ = ("tokens", "updated_at")

    def __init__(self, tokens: float, updated_at: float):
        self.tokens = tokens
        self.updated_at = updated_at


class TokenBucketLimiter:
    """Keyed token bucket limiter.

    A bucket that has refilled to ``burst_limit`` is indistinguishable from
    a fresh one, so idle keys are swept at most once per refill window.

    Example:
        >>> limiter = TokenBucketLimiter(RateLimitConfig(requests_per_minute=30))
        >>> result = limiter.acquire("127.0.0.1")
        >>> if not result.allowed:
        ...     reject(retry_after=result.reset_in)
    """

    def __init__(self, config: Optional[RateLimitConfig] = None, *, clock: Optional[Clock] = None):
        self.config = config or RateLimitConfig()
        self._clock = clock or time.monotonic
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._last_sweep = self._clock()

    @property
    def _rate(self) -> float:
        return self.config.requests_per_minute / 60.0

    @property
    def tracked_keys(self) -> int:
        """Number of callers currently holding a partially drained bucket."""
        with self._lock:
            return len(self._buckets)

    def _tokens_at(self, bucket: _Bucket, now: float) -> float:
        elapsed = max(now - bucket.updated_at, 0.0)
        return min(float(self.config.burst_limit), bucket.tokens + elapsed * self._rate)

    def _sweep(self, now: float) -> None:
        if self._rate <= 0:
            return
        if now - self._last_sweep < self.config.burst_limit / self._rate:
            return
        self._last_sweep = now
        full = float(self.config.burst_limit)
        idle = [key for key, bucket in self._buckets.items() if self._tokens_at(bucket, now) >= full]
        for key in idle:
            del self._buckets[key]
        if idle:
            logger.debug("Dropped %d idle rate limit buckets", len(idle))

    def _refill(self, key: str, now: float) -> _Bucket:
        self._sweep(now)
        bucket = self._buckets.get(key)
        if bucket is None:
            return _Bucket(float(self.config.burst_limit), now)
        bucket.tokens = self._tokens_at(bucket, now)
        bucket.updated_at = now
        return bucket

    def _result(self, bucket: _Bucket, allowed: bool) -> RateLimitResult:
        if bucket.tokens >= 1 or self._rate <= 0:
            reset_in = 0.0
        else:
            reset_in = (1 - bucket.tokens) / self._rate
        return RateLimitResult(
            allowed=allowed,
            remaining=int(bucket.tokens),
            reset_in=reset_in,
            limit=self.config.burst_limit,
        )

    def check(self, key: str = "default") -> RateLimitResult:
        """Report whether a request would be allowed, without consuming a token."""
        if not self.config.enabled:
            return RateLimitResult(True, self.config.burst_limit, 0.0, self.config.burst_limit)
        with self._lock:
            bucket = self._refill(key, self._clock())
            return self._result(bucket, bucket.tokens >= 1)

    def acquire(self, key: str = "default") -> RateLimitResult:
        """Consume a token if one is available."""
        if not self.config.enabled:
            return RateLimitResult(True, self.config.burst_limit, 0.0, self.config.burst_limit)
        with self._lock:
            bucket = self._refill(key, self._clock())
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                self._buckets[key] = bucket
                return self._result(bucket, True)
            logger.debug("Rate limit exceeded for %s", key)
            return self._result(bucket, False)

    def acquire_or_raise(self, key: str = "default") -> RateLimitResult:
        """Like ``acquire`` but raise ``RateLimitWaitError`` when exhausted."""
        result = self.acquire(key)
        if not result.allowed:
            raise RateLimitWaitError(
                f"Rate limit exceeded, retry in {result.reset_in:.1f}s",
                wait_needed=result.reset_in,
                limit=self.config.requests_per_minute,
                headers=result.to_headers(),
            )
        return result

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)
