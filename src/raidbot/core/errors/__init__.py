"""Error types for raidbot.

All custom exception classes live in domain-specific modules within this
package; this ``__init__`` re-exports them for convenient access.

Usage:
    from raidbot.core.errors import ClassifiedError, ErrorKind, user_message
"""

from raidbot.core.errors.classified import RETRYABLE_KINDS, ClassifiedError, ErrorKind
from raidbot.core.errors.messages import USER_MESSAGES, user_message
from raidbot.core.errors.provider import (
    ProviderHTTPError,
    ProviderNotConfiguredError,
    ProviderParseError,
)
from raidbot.core.errors.resilience import CircuitBreakerError, RateLimitWaitError

__all__ = [
    # Taxonomy
    "ErrorKind",
    "ClassifiedError",
    "RETRYABLE_KINDS",
    # User messaging
    "USER_MESSAGES",
    "user_message",
    # Provider errors
    "ProviderHTTPError",
    "ProviderParseError",
    "ProviderNotConfiguredError",
    # Resilience errors
    "CircuitBreakerError",
    "RateLimitWaitError",
]
