"""Resilience data models, enums, and protocols.

Defines the core types used across the resilience sub-package:
- RetryPolicy for backoff tuning
- CircuitState enum and CircuitStatus snapshot for observability
- SleepFunc / Clock protocols for injectable timing in tests
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # normal operation
    OPEN = "open"  # rejecting all calls
    HALF_OPEN = "half_open"  # single trial call allowed


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff configuration for the retry manager.

    Attributes:
        max_attempts: Total invocations allowed, including the first (>= 1).
        base_delay_ms: Delay before the first retry, in milliseconds.
        max_delay_ms: Ceiling applied before jitter, in milliseconds.
        backoff_multiplier: Growth factor per retry (> 1).
        jitter_enabled: Multiply each delay by a uniform factor in [0.5, 1.0].
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0
    jitter_enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff_multiplier <= 1:
            raise ValueError(
                f"backoff_multiplier must be > 1, got {self.backoff_multiplier}"
            )
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        """Policy that performs a single attempt."""
        return cls(max_attempts=1)


@dataclass
class CircuitStatus:
    """Point-in-time view of a circuit breaker."""

    name: str
    state: CircuitState
    consecutive_failures: int
    failure_threshold: int
    reset_timeout_ms: int
    opened_at: Optional[float] = None
    retry_after_seconds: Optional[float] = None
    enabled: bool = True


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...


class Clock(Protocol):
    """Protocol for injectable monotonic clock (seconds)."""

    def __call__(self) -> float: ...
