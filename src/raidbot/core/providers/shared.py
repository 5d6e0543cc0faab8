"""Shared utilities for HTTP-backed chat providers.

Architecture constraints:
    - Imports only httpx types (no httpx.AsyncClient creation here)
    - SECURITY: error parsing redacts API keys; upstream text stored on
      errors is for server logs only and never reaches end users.

Utilities:
    - parse_retry_after(response) -> Optional[float]
    - extract_error_message(response, provider_format=None) -> str
    - raise_for_status(provider, response) -> None
    - parse_json(provider, response) -> dict
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from raidbot.core.errors.provider import ProviderHTTPError, ProviderParseError
from raidbot.core.observability import redact_secrets

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

# Placeholder returned when the upstream succeeds without generated content
NO_RESPONSE_TEXT = "No response generated"

_MAX_ERROR_TEXT = 200


def parse_retry_after(response: "httpx.Response") -> Optional[float]:
    """Parse the ``Retry-After`` header from an HTTP response.

    Handles numeric values only; HTTP-date values return ``None``.
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            pass
    return None


def extract_error_message(
    response: "httpx.Response",
    *,
    provider_format: Optional[Callable[[dict[str, Any]], str]] = None,
) -> str:
    """Extract and redact an error message from an HTTP error response.

    Tries ``provider_format`` on the parsed JSON first, then the common
    ``{"error": {"message": ...}}`` / ``{"error": "..."}`` /
    ``{"message": ...}`` shapes, then the raw body.
    """
    try:
        data = response.json()
    except ValueError:
        text = response.text[:_MAX_ERROR_TEXT] if response.text else "Unknown error"
        return redact_secrets(text)

    if not isinstance(data, dict):
        return redact_secrets(str(data)[:_MAX_ERROR_TEXT])

    if provider_format is not None:
        result = provider_format(data)
        if result:
            return redact_secrets(result)

    error_field = data.get("error")
    if isinstance(error_field, dict):
        msg = error_field.get("message", str(error_field))
    elif isinstance(error_field, str):
        msg = error_field
    else:
        msg = data.get("message", response.text[:_MAX_ERROR_TEXT])
    return redact_secrets(str(msg))


def raise_for_status(provider: str, response: "httpx.Response") -> None:
    """Raise ``ProviderHTTPError`` for any non-2xx response."""
    if 200 <= response.status_code < 300:
        return
    message = extract_error_message(response)
    logger.debug("%s returned HTTP %d: %s", provider, response.status_code, message)
    raise ProviderHTTPError(
        provider=provider,
        status_code=response.status_code,
        message=message,
        retry_after=parse_retry_after(response),
    )


def parse_json(provider: str, response: "httpx.Response") -> dict[str, Any]:
    """Decode a 2xx body, raising ``ProviderParseError`` when it is not a JSON object.

    An empty body decodes to ``{}`` (no generated content, not a failure).
    """
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderParseError(provider, original_error=exc) from exc
    if not isinstance(data, dict):
        raise ProviderParseError(provider, "Unexpected response shape")
    return data
