"""Async retry with exponential backoff and jitter.

The retry manager re-invokes a zero-argument coroutine factory until it
succeeds, fails with a non-retryable classified error, or runs out of
attempts. It knows nothing about providers or circuit breakers; the
orchestration service composes those around it.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from raidbot.core.errors.classified import ClassifiedError
from raidbot.core.observability import audit_log
from raidbot.core.resilience.classifier import Classifier, classify
from raidbot.core.resilience.models import RetryPolicy, SleepFunc

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_delay_ms(
    attempt_index: int,
    policy: RetryPolicy,
    *,
    retry_after_seconds: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Compute the pause before the next attempt.

    ``min(base * multiplier**attempt_index, max)`` clamped to ``[0, max]``,
    then multiplied by a jitter factor in ``[0.5, 1.0]`` when enabled, then
    raised to at least ``retry_after_seconds`` when the upstream sent a hint.

    Args:
        attempt_index: Index of the attempt that just failed (first call is 0).
        policy: Backoff configuration.
        retry_after_seconds: Optional upstream lower bound.
        rng: Injectable Random instance for deterministic testing.

    Returns:
        Non-negative delay in whole milliseconds.
    """
    try:
        delay = policy.base_delay_ms * (policy.backoff_multiplier ** max(attempt_index, 0))
    except OverflowError:
        delay = float(policy.max_delay_ms)
    delay = min(max(delay, 0.0), float(policy.max_delay_ms))

    if policy.jitter_enabled:
        _rng = rng or random
        delay *= 0.5 + 0.5 * _rng.random()

    if retry_after_seconds:
        delay = max(delay, retry_after_seconds * 1000.0)

    return max(int(delay), 0)


class RetryManager:
    """Re-invokes failing async operations according to a ``RetryPolicy``.

    Args:
        policy: Default policy when ``execute_with_retry`` gets none.
        classifier: Default error classifier (``classify`` if omitted).
        rng: Injectable Random instance for deterministic jitter.
        sleep_func: Injectable sleep for time control in tests.

    Example:
        >>> manager = RetryManager(RetryPolicy(max_attempts=3))
        >>> reply = await manager.execute_with_retry(lambda: adapter.call(...))
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        classifier: Optional[Classifier] = None,
        rng: Optional[random.Random] = None,
        sleep_func: Optional[SleepFunc] = None,
    ):
        self.policy = policy or RetryPolicy()
        self._classifier = classifier or classify
        self._rng = rng or random.Random()
        self._sleep = sleep_func or asyncio.sleep

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        classifier: Optional[Classifier] = None,
    ) -> T:
        """Run ``operation`` until success or a terminal failure.

        Args:
            operation: Zero-argument coroutine factory (use a lambda for args).
            policy: Overrides the manager's default policy for this call.
            classifier: Overrides the manager's default classifier.

        Returns:
            Result of the first successful invocation.

        Raises:
            ClassifiedError: The classified form of the last failure.
        """
        _policy = policy or self.policy
        _classify = classifier or self._classifier

        attempt = 0
        while True:
            try:
                result = await operation()
                if attempt > 0:
                    logger.info("Operation succeeded on attempt %d", attempt + 1)
                return result
            except Exception as exc:
                error = exc if isinstance(exc, ClassifiedError) else _classify(exc)

                if not error.retryable or attempt + 1 >= _policy.max_attempts:
                    if error is exc:
                        raise
                    raise error from exc

                delay_ms = compute_delay_ms(
                    attempt,
                    _policy,
                    retry_after_seconds=error.retry_after_seconds,
                    rng=self._rng,
                )
                logger.warning(
                    "Attempt %d/%d failed (%s), retrying in %dms",
                    attempt + 1,
                    _policy.max_attempts,
                    error.kind.value,
                    delay_ms,
                )
                audit_log(
                    "retry_attempt",
                    attempt=attempt + 1,
                    max_attempts=_policy.max_attempts,
                    error_kind=error.kind.value,
                    delay_ms=delay_ms,
                    provider=error.provider,
                    correlation_id=error.correlation_id,
                )
                await self._sleep(delay_ms / 1000.0)
                attempt += 1


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    classifier: Optional[Classifier] = None,
    *,
    rng: Optional[random.Random] = None,
    sleep_func: Optional[SleepFunc] = None,
) -> T:
    """Module-level convenience wrapper around ``RetryManager``."""
    manager = RetryManager(policy, classifier=classifier, rng=rng, sleep_func=sleep_func)
    return await manager.execute_with_retry(operation)
