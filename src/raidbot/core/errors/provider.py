"""Raw provider adapter errors.

Adapters raise these (or let ``httpx`` transport errors propagate); the
classifier turns them into ``ClassifiedError`` instances.
"""

from typing import Optional


class ProviderHTTPError(Exception):
    """Upstream answered with a non-2xx status.

    Attributes:
        provider: Name of the provider that raised the error.
        status_code: HTTP status code of the upstream response.
        retry_after: Parsed ``Retry-After`` header, if present.
        message: Redacted upstream error description.
    """

    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str,
        retry_after: Optional[float] = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after
        self.message = message
        super().__init__(f"[{provider}] HTTP {status_code}: {message}")


class ProviderParseError(Exception):
    """Upstream answered 2xx but the body was not valid JSON."""

    def __init__(
        self,
        provider: str,
        message: str = "Invalid JSON response",
        original_error: Optional[Exception] = None,
    ):
        self.provider = provider
        self.message = message
        self.original_error = original_error
        super().__init__(f"[{provider}] {message}")


class ProviderNotConfiguredError(Exception):
    """No credential is available for the requested provider."""

    def __init__(self, provider: Optional[str] = None):
        self.provider = provider
        target = provider or "any provider"
        super().__init__(f"No API credential configured for {target}")
