"""Resilience error classes.

Raised by the circuit breaker and the endpoint rate limiter. These are not
part of the classified taxonomy; the classifier maps them when they escape
to a caller that needs an ``ErrorKind``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from raidbot.core.resilience.models import CircuitState


class CircuitBreakerError(Exception):
    """Circuit breaker is open and rejecting requests.

    Attributes:
        breaker_name: Name of the circuit breaker.
        state: Current state of the breaker.
        retry_after: Seconds until the breaker allows a trial call.
    """

    def __init__(
        self,
        message: str,
        breaker_name: Optional[str] = None,
        state: Optional[CircuitState] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.breaker_name = breaker_name
        self.state = state
        self.retry_after = retry_after


class RateLimitWaitError(Exception):
    """The endpoint rate limiter has no token available.

    Attributes:
        wait_needed: Seconds until the next token is available.
        limit: Configured requests per minute.
        headers: Rate limit response headers for the rejected caller.
    """

    def __init__(
        self,
        message: str,
        wait_needed: Optional[float] = None,
        limit: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.wait_needed = wait_needed
        self.limit = limit
        self.headers = headers or {}
