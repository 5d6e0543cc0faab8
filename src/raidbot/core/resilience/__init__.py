"""Resilience primitives for upstream AI provider calls.

Provides:
- classify / classify_status: map raw failures onto ``ErrorKind``
- RetryManager / execute_with_retry: exponential backoff with jitter
- CircuitBreaker: per-provider fail-fast with half-open probing
- TokenBucketLimiter: keyed request rate limiting
- execute_with_resilience: breaker -> retry -> timeout composition
"""

from raidbot.core.resilience.breaker import CircuitBreaker
from raidbot.core.resilience.classifier import (
    DEFAULT_RATE_LIMIT_RETRY_AFTER,
    Classifier,
    classify,
    classify_status,
)
from raidbot.core.resilience.execution import execute_with_resilience, with_timeout
from raidbot.core.resilience.models import (
    CircuitState,
    CircuitStatus,
    Clock,
    RetryPolicy,
    SleepFunc,
)
from raidbot.core.resilience.rate_limit import (
    RateLimitConfig,
    RateLimitResult,
    TokenBucketLimiter,
)
from raidbot.core.resilience.retry import (
    RetryManager,
    compute_delay_ms,
    execute_with_retry,
)

__all__ = [
    # Models
    "CircuitState",
    "CircuitStatus",
    "Clock",
    "RetryPolicy",
    "SleepFunc",
    # Classification
    "Classifier",
    "DEFAULT_RATE_LIMIT_RETRY_AFTER",
    "classify",
    "classify_status",
    # Retry
    "RetryManager",
    "compute_delay_ms",
    "execute_with_retry",
    # Circuit breaker
    "CircuitBreaker",
    # Rate limiting
    "RateLimitConfig",
    "RateLimitResult",
    "TokenBucketLimiter",
    # Execution
    "execute_with_resilience",
    "with_timeout",
]
