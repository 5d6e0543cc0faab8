"""Tagged error type produced by the error classifier.

Every failure that crosses the provider boundary is normalized into a single
``ClassifiedError`` carrying an ``ErrorKind``. Callers branch on ``kind``
rather than on exception subclasses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Failure categories used for retry, fallback, and user messaging."""

    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    API_KEY = "API_KEY"  # 401/403 - credentials will not self-heal
    BAD_REQUEST = "BAD_REQUEST"  # 400/422 - same input fails everywhere
    SERVER = "SERVER"  # 5xx
    PARSE = "PARSE"  # malformed upstream body
    CONFIGURATION = "CONFIGURATION"  # no provider credentials
    UNKNOWN = "UNKNOWN"


# Kinds the retry manager may re-attempt. Everything else is terminal.
RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMIT,
        ErrorKind.SERVER,
    }
)


class ClassifiedError(Exception):
    """A failure mapped onto the error taxonomy.

    Attributes:
        kind: Category of the failure (always set).
        message: Technical description, suitable for server logs only.
        status_code: Upstream HTTP status, when one was received.
        retry_after_seconds: Upstream hint that lower-bounds the next delay.
        correlation_id: Identifier of the top-level request.
        retryable: Whether the retry manager may re-attempt the operation.
        provider: Name of the provider that produced the failure, if any.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after_seconds: Optional[float] = None,
        correlation_id: Optional[str] = None,
        retryable: Optional[bool] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        self.correlation_id = correlation_id
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else retryable
        self.provider = provider

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self.kind.value}, message={self.message!r}, "
            f"status_code={self.status_code}, retryable={self.retryable})"
        )

    def to_log_dict(self) -> Dict[str, Any]:
        """Structured view for server-side logging."""
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.retry_after_seconds is not None:
            data["retry_after_seconds"] = self.retry_after_seconds
        if self.correlation_id:
            data["correlation_id"] = self.correlation_id
        if self.provider:
            data["provider"] = self.provider
        return data
