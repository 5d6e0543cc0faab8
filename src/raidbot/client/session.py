"""Client-side access to the ``/api/ai`` endpoint.

``ChatClient`` performs the HTTP call with its own retry manager and circuit
breaker (one per client instance) and classifies transport failures with the
same classifier the server uses.

``ChatSession`` layers an observable state machine on top:

    IDLE -> LOADING -> SUCCESS | ERROR
    ERROR -> RETRYING -> LOADING -> ...

At most one request is in flight per session; starting a new one cancels
the old one, and a cancelled request is treated as superseded rather than
failed.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Set

import httpx

from raidbot.config.domains import ClientSettings
from raidbot.core.context import CORRELATION_ID_HEADER
from raidbot.core.errors.classified import ClassifiedError, ErrorKind
from raidbot.core.errors.provider import ProviderHTTPError, ProviderParseError
from raidbot.core.providers.shared import extract_error_message, parse_retry_after
from raidbot.core.resilience.breaker import CircuitBreaker
from raidbot.core.resilience.classifier import classify
from raidbot.core.resilience.models import Clock, RetryPolicy, SleepFunc
from raidbot.core.resilience.retry import RetryManager
from raidbot.core.responses import ResponseEnvelope

logger = logging.getLogger(__name__)

_ENDPOINT_NAME = "api"


class ChatClient:
    """HTTP client for the chat endpoint.

    Args:
        api_url: Full URL of the ``/api/ai`` endpoint.
        timeout: Per-attempt HTTP timeout in seconds.
        policy: Retry policy for transport-level failures.
        breaker: Circuit breaker guarding the endpoint.
        http_client: Injected ``httpx.AsyncClient`` (owned by the caller).
        sleep_func: Injectable sleep for the retry manager.
        rng: Injectable Random for retry jitter.

    Example:
        >>> async with ChatClient("http://127.0.0.1:8000/api/ai") as client:
        ...     envelope = await client.generate_response("Hello")
    """

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 30.0,
        policy: Optional[RetryPolicy] = None,
        breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep_func: Optional[SleepFunc] = None,
        rng: Optional[random.Random] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.retry_manager = RetryManager(policy or RetryPolicy(), rng=rng, sleep_func=sleep_func)
        self.breaker = breaker or CircuitBreaker(_ENDPOINT_NAME)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
    ) -> "ChatClient":
        breaker_settings = settings.circuit_breaker
        return cls(
            settings.api_url,
            timeout=settings.timeout,
            policy=settings.retry.to_policy(),
            breaker=CircuitBreaker(
                _ENDPOINT_NAME,
                failure_threshold=breaker_settings.failure_threshold,
                reset_timeout_ms=breaker_settings.reset_timeout_ms,
                enabled=breaker_settings.enabled,
                clock=clock,
            ),
            http_client=http_client,
        )

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _call_api(
        self,
        message: str,
        options: Optional[Mapping[str, Any]],
        correlation_id: Optional[str],
    ) -> dict:
        headers = {CORRELATION_ID_HEADER: correlation_id} if correlation_id else {}
        payload: dict = {"message": message}
        if options:
            payload["options"] = dict(options)

        response = await self._http.post(
            self.api_url, json=payload, headers=headers, timeout=self.timeout
        )

        if not 200 <= response.status_code < 300:
            raise ProviderHTTPError(
                provider=_ENDPOINT_NAME,
                status_code=response.status_code,
                message=extract_error_message(response),
                retry_after=parse_retry_after(response),
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderParseError(_ENDPOINT_NAME, original_error=exc) from exc
        if not isinstance(data, dict) or "success" not in data:
            raise ProviderParseError(_ENDPOINT_NAME, "Unexpected response shape")
        return data

    async def generate_response(
        self,
        message: str,
        options: Optional[Mapping[str, Any]] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> ResponseEnvelope:
        """Send ``message`` and return the success envelope.

        Raises:
            ClassifiedError: Transport failure after retries, breaker
                rejection, or a ``success: false`` envelope (with the
                envelope's ``type`` as kind; never retried here since the
                server already exhausted its own retries).
        """

        def _classify(error: BaseException) -> ClassifiedError:
            return classify(error, correlation_id=correlation_id, provider=_ENDPOINT_NAME)

        async def _retried() -> dict:
            return await self.retry_manager.execute_with_retry(
                lambda: self._call_api(message, options, correlation_id),
                classifier=_classify,
            )

        try:
            data = await self.breaker.execute(_retried)
        except ClassifiedError:
            raise
        except Exception as exc:
            raise _classify(exc) from exc

        if not data.get("success"):
            try:
                kind = ErrorKind(data.get("type"))
            except ValueError:
                kind = ErrorKind.UNKNOWN
            raise ClassifiedError(
                kind,
                str(data.get("error") or "Request failed"),
                correlation_id=data.get("correlationId") or correlation_id,
                retryable=False,
                provider=_ENDPOINT_NAME,
            )

        return ResponseEnvelope(
            success=True,
            correlation_id=data.get("correlationId", ""),
            response=data.get("response"),
            model=data.get("model"),
            provider=data.get("provider"),
            usage=data.get("usage"),
        )

    async def get_status(self) -> dict:
        """Fetch the endpoint's provider status report."""
        response = await self._http.get(self.api_url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()


class SessionState(str, Enum):
    """Externally observable session states."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    RETRYING = "retrying"


class ChatSession:
    """Single-flight chat session with manual retry.

    Args:
        client: ChatClient used for requests.
        max_retries: Cap on user-initiated retries per message.
        on_state_change: Optional callback invoked with each new state.
    """

    def __init__(
        self,
        client: ChatClient,
        *,
        max_retries: int = 3,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
    ):
        self.client = client
        self.max_retries = max_retries
        self._on_state_change = on_state_change

        self.state = SessionState.IDLE
        self.response: Optional[ResponseEnvelope] = None
        self.error: Optional[ClassifiedError] = None
        self.retry_count = 0
        self.last_message: Optional[str] = None
        self._last_options: Optional[Mapping[str, Any]] = None

        self._task: Optional["asyncio.Task[ResponseEnvelope]"] = None
        self._superseded: Set["asyncio.Task[ResponseEnvelope]"] = set()

    # -- computed --------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self.state in (SessionState.LOADING, SessionState.RETRYING)

    @property
    def is_error(self) -> bool:
        return self.state == SessionState.ERROR

    @property
    def is_success(self) -> bool:
        return self.state == SessionState.SUCCESS

    @property
    def can_retry(self) -> bool:
        return (
            self.state == SessionState.ERROR
            and self.last_message is not None
            and self.retry_count < self.max_retries
        )

    # -- internals -------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _cancel_in_flight(self) -> None:
        task = self._task
        if task is not None and not task.done():
            self._superseded.add(task)
            task.cancel()
        self._task = None

    async def _run(
        self, message: str, options: Optional[Mapping[str, Any]]
    ) -> Optional[ResponseEnvelope]:
        task = asyncio.ensure_future(self.client.generate_response(message, options))
        self._task = task
        try:
            envelope = await task
        except asyncio.CancelledError:
            if task in self._superseded:
                logger.debug("Chat request superseded")
                return None
            raise
        except ClassifiedError as exc:
            if self._task is task:
                self.error = exc
                self._set_state(SessionState.ERROR)
            return None
        else:
            if self._task is not task:
                logger.debug("Discarding response of a superseded chat request")
                return None
            self.response = envelope
            self.error = None
            self._set_state(SessionState.SUCCESS)
            return envelope
        finally:
            self._superseded.discard(task)
            if self._task is task:
                self._task = None

    # -- actions ---------------------------------------------------------

    async def send_message(
        self,
        message: Any,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Optional[ResponseEnvelope]:
        """Send a new message, cancelling any in-flight request.

        Returns:
            The success envelope, or None on failure or when superseded
            (inspect ``state`` and ``error``).
        """
        self._cancel_in_flight()
        self.retry_count = 0
        self.response = None

        if not isinstance(message, str) or not message.strip():
            self.last_message = None
            self._last_options = None
            self.error = ClassifiedError(ErrorKind.BAD_REQUEST, "Message is required")
            self._set_state(SessionState.ERROR)
            return None

        self.last_message = message
        self._last_options = options
        self.error = None
        self._set_state(SessionState.LOADING)
        return await self._run(message, options)

    async def retry(self) -> Optional[ResponseEnvelope]:
        """Re-issue the last message. Only valid from ERROR within the retry cap."""
        message = self.last_message
        if message is None or not self.can_retry:
            logger.debug(
                "Retry ignored (state=%s, retry_count=%d)", self.state.value, self.retry_count
            )
            return None

        self.retry_count += 1
        self._set_state(SessionState.RETRYING)
        self._cancel_in_flight()
        self.error = None
        self._set_state(SessionState.LOADING)
        return await self._run(message, self._last_options)

    def clear_error(self) -> None:
        self.error = None
        self._set_state(SessionState.IDLE)

    def reset(self) -> None:
        """Abort in-flight work and return to IDLE with cleared state."""
        self._cancel_in_flight()
        self.response = None
        self.error = None
        self.retry_count = 0
        self.last_message = None
        self._last_options = None
        self._set_state(SessionState.IDLE)
