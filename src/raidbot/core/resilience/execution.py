"""Full resilience stack execution.

Composes circuit breaker, retry, and per-attempt timeout around a single
provider call. Layering, outermost first:

1. Circuit breaker (fail fast while OPEN; sees one outcome per call)
2. Retry manager (re-attempts transient failures with backoff)
3. Timeout (bounds each individual attempt)

Every failure leaving this function is a ``ClassifiedError``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from raidbot.core.errors.classified import ClassifiedError
from raidbot.core.resilience.breaker import CircuitBreaker
from raidbot.core.resilience.classifier import classify
from raidbot.core.resilience.models import RetryPolicy
from raidbot.core.resilience.retry import RetryManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(operation: Callable[[], Awaitable[T]], timeout_seconds: Optional[float]) -> T:
    """Await ``operation()`` bounded by ``timeout_seconds`` (None = no bound).

    Raises:
        asyncio.TimeoutError: If the attempt overran; the in-flight call is
            cancelled.
    """
    if timeout_seconds is None or timeout_seconds <= 0:
        return await operation()
    return await asyncio.wait_for(operation(), timeout=timeout_seconds)


async def execute_with_resilience(
    operation: Callable[[], Awaitable[T]],
    provider_name: str,
    *,
    breaker: Optional[CircuitBreaker] = None,
    retry_manager: Optional[RetryManager] = None,
    policy: Optional[RetryPolicy] = None,
    timeout_seconds: Optional[float] = None,
    correlation_id: Optional[str] = None,
) -> T:
    """Execute a provider call with the full resilience stack.

    Args:
        operation: Zero-argument coroutine factory performing one attempt.
        provider_name: Provider name recorded on classified errors.
        breaker: Circuit breaker for this provider (None = unguarded).
        retry_manager: Retry manager to use (a default one if omitted).
        policy: Retry policy override for this call.
        timeout_seconds: Per-attempt timeout.
        correlation_id: Id of the top-level request.

    Returns:
        Result of the first successful attempt.

    Raises:
        ClassifiedError: Terminal classified failure, including breaker
            rejections (``SERVER``, non-retryable).
    """
    _retry = retry_manager or RetryManager()

    def _classify(error: BaseException) -> ClassifiedError:
        return classify(error, correlation_id=correlation_id, provider=provider_name)

    async def _attempt() -> T:
        return await with_timeout(operation, timeout_seconds)

    async def _retried() -> T:
        return await _retry.execute_with_retry(_attempt, policy=policy, classifier=_classify)

    try:
        if breaker is None:
            return await _retried()
        return await breaker.execute(_retried)
    except ClassifiedError:
        raise
    except Exception as exc:
        raise _classify(exc) from exc
