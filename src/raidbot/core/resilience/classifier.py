"""Error classification for retry and fallback decisions.

Maps any raw failure (transport exception, HTTP status, parse failure,
missing configuration) onto exactly one ``ErrorKind``. Classification is
total: anything not recognized becomes ``UNKNOWN`` and is treated as
non-retryable.

Classification rules (applied in order):
    1. Connection-level failures           -> NETWORK (retryable)
    2. Timeouts                            -> TIMEOUT (retryable)
    3. HTTP status (response or on error):
         401/403                           -> API_KEY (terminal)
         429                               -> RATE_LIMIT (retryable, Retry-After or 60s)
         400/422                           -> BAD_REQUEST (terminal)
         500/502/503/504                   -> SERVER (retryable)
         any other non-2xx                 -> UNKNOWN (terminal)
    4. Body parse failure on 2xx           -> PARSE (terminal)
    5. No credential configured            -> CONFIGURATION (terminal)
    6. Everything else                     -> UNKNOWN (terminal)
"""

from __future__ import annotations

import asyncio
import json
import socket
from typing import Callable, Optional

import httpx

from raidbot.core.context import generate_correlation_id, get_correlation_id
from raidbot.core.errors.classified import ClassifiedError, ErrorKind
from raidbot.core.errors.provider import (
    ProviderHTTPError,
    ProviderNotConfiguredError,
    ProviderParseError,
)
from raidbot.core.errors.resilience import CircuitBreakerError, RateLimitWaitError
from raidbot.core.observability import redact_secrets

Classifier = Callable[[BaseException], ClassifiedError]

DEFAULT_RATE_LIMIT_RETRY_AFTER = 60.0

_AUTH_STATUSES = frozenset({401, 403})
_BAD_REQUEST_STATUSES = frozenset({400, 422})
_SERVER_STATUSES = frozenset({500, 502, 503, 504})

_NETWORK_ERRORS = (
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    ConnectionError,
    socket.gaierror,
)
_TIMEOUT_ERRORS = (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)


def _status_of(error: BaseException, response: Optional[httpx.Response]) -> Optional[int]:
    if response is not None:
        return response.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    code = getattr(error, "status_code", None)
    return code if isinstance(code, int) else None


def _retry_after_of(
    error: BaseException, response: Optional[httpx.Response]
) -> Optional[float]:
    if response is not None:
        return _parse_retry_after(response.headers.get("Retry-After"))
    if isinstance(error, httpx.HTTPStatusError):
        return _parse_retry_after(error.response.headers.get("Retry-After"))
    hint = getattr(error, "retry_after", None)
    return float(hint) if isinstance(hint, (int, float)) else None


def _describe(error: BaseException) -> str:
    if isinstance(error, (ProviderHTTPError, ProviderParseError)):
        text = error.message
    else:
        text = str(error) or type(error).__name__
    return redact_secrets(text)


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error kind.

    Unlisted codes (3xx, exotic 4xx, other 5xx) map to ``UNKNOWN``.
    """
    if status_code in _AUTH_STATUSES:
        return ErrorKind.API_KEY
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code in _BAD_REQUEST_STATUSES:
        return ErrorKind.BAD_REQUEST
    if status_code in _SERVER_STATUSES:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN


def classify(
    error: BaseException,
    response: Optional[httpx.Response] = None,
    *,
    correlation_id: Optional[str] = None,
    provider: Optional[str] = None,
) -> ClassifiedError:
    """Classify a raw failure.

    Args:
        error: The exception raised by the operation.
        response: The upstream HTTP response, when one was received.
        correlation_id: Id of the top-level request. Falls back to the id
            bound in context, then to a freshly generated one.
        provider: Provider name to record on the result.

    Returns:
        A ``ClassifiedError``. An already-classified error is returned as-is
        (with a correlation id filled in if it had none).
    """
    cid = correlation_id or get_correlation_id() or generate_correlation_id()
    provider = (
        provider
        or getattr(error, "provider", None)
        or getattr(error, "breaker_name", None)
    )

    if isinstance(error, ClassifiedError):
        if error.correlation_id is None:
            error.correlation_id = cid
        if error.provider is None:
            error.provider = provider
        return error

    def _make(kind: ErrorKind, message: str, **kwargs) -> ClassifiedError:
        return ClassifiedError(
            kind, message, correlation_id=cid, provider=provider, **kwargs
        )

    # 1. Connection-level failures
    if isinstance(error, _NETWORK_ERRORS):
        return _make(ErrorKind.NETWORK, f"Network connection failed: {_describe(error)}")

    # 2. Timeouts
    if isinstance(error, _TIMEOUT_ERRORS):
        return _make(ErrorKind.TIMEOUT, f"Request timed out: {_describe(error)}")

    # 3. HTTP status
    status = _status_of(error, response)
    if status is not None and not 200 <= status < 300:
        kind = classify_status(status)
        retry_after = None
        if kind is ErrorKind.RATE_LIMIT:
            retry_after = _retry_after_of(error, response)
            if retry_after is None:
                retry_after = DEFAULT_RATE_LIMIT_RETRY_AFTER
        return _make(
            kind,
            _describe(error),
            status_code=status,
            retry_after_seconds=retry_after,
        )

    # 4. Parse failure on an otherwise successful response
    if isinstance(error, (ProviderParseError, json.JSONDecodeError)):
        return _make(ErrorKind.PARSE, _describe(error), status_code=status)

    # 5. Missing credentials
    if isinstance(error, ProviderNotConfiguredError):
        return _make(ErrorKind.CONFIGURATION, _describe(error))

    # Breaker and local limiter rejections escape the retry manager; they
    # are never re-attempted in place.
    if isinstance(error, CircuitBreakerError):
        return _make(
            ErrorKind.SERVER,
            _describe(error),
            retry_after_seconds=error.retry_after,
            retryable=False,
        )
    if isinstance(error, RateLimitWaitError):
        return _make(
            ErrorKind.RATE_LIMIT,
            _describe(error),
            retry_after_seconds=error.wait_needed,
            retryable=False,
        )

    # 6. Fail closed
    return _make(ErrorKind.UNKNOWN, _describe(error))
