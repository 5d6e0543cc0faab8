"""Per-provider circuit breaker.

State machine:
    CLOSED    --(consecutive_failures reaches failure_threshold)--> OPEN
    OPEN      --(now >= opened_at + reset_timeout)-------------> HALF_OPEN
    HALF_OPEN --(trial succeeds)-------------------------------> CLOSED
    HALF_OPEN --(trial fails)----------------------------------> OPEN (timer restarted)

While OPEN (and cooling down) calls are rejected with ``CircuitBreakerError``
without invoking the wrapped operation. While HALF_OPEN exactly one trial is
in flight; concurrent callers are rejected the same way. Only the trial's
outcome moves a HALF_OPEN breaker, and a call admitted while CLOSED that
finishes after the breaker opened leaves the state untouched.

The breaker wraps the retry manager, so it only ever observes the final
outcome of a retried operation.
"""

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Optional, TypeVar

from raidbot.core.errors.classified import ClassifiedError, ErrorKind
from raidbot.core.errors.resilience import CircuitBreakerError
from raidbot.core.observability import audit_log
from raidbot.core.resilience.models import CircuitState, CircuitStatus, Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _counts_as_failure(error: BaseException) -> bool:
    # A malformed request says nothing about upstream health.
    return not (isinstance(error, ClassifiedError) and error.kind is ErrorKind.BAD_REQUEST)


class CircuitBreaker:
    """Circuit breaker guarding one upstream provider.

    State mutation happens under a ``threading.Lock`` so counters and
    transitions stay atomic even if calls arrive from several threads.

    Args:
        name: Provider name, used in errors and logs.
        failure_threshold: Consecutive failures that trip the breaker (> 0).
        reset_timeout_ms: Cooldown before a trial call is allowed.
        enabled: When False every call passes straight through.
        clock: Injectable monotonic clock returning seconds.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout_ms: int = 60000,
        *,
        enabled: bool = True,
        clock: Optional[Clock] = None,
        failure_filter: Callable[[BaseException], bool] = _counts_as_failure,
    ):
        if failure_threshold <= 0:
            raise ValueError(f"failure_threshold must be > 0, got {failure_threshold}")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.enabled = enabled
        self._clock = clock or time.monotonic
        self._failure_filter = failure_filter

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    def _cooldown_elapsed(self, now: float) -> bool:
        return self.opened_at is not None and now >= self.opened_at + self.reset_timeout_ms / 1000.0

    def is_available(self) -> bool:
        """Whether a call would currently be let through (no state change)."""
        if not self.enabled:
            return True
        with self._lock:
            if self.state == CircuitState.CLOSED:
                return True
            if self.state == CircuitState.OPEN:
                return self._cooldown_elapsed(self._clock())
            return not self._trial_in_flight

    def retry_after(self) -> Optional[float]:
        """Seconds until an OPEN breaker allows a trial, else None."""
        with self._lock:
            if self.state != CircuitState.OPEN or self.opened_at is None:
                return None
            remaining = self.opened_at + self.reset_timeout_ms / 1000.0 - self._clock()
            return max(remaining, 0.0)

    def get_status(self) -> CircuitStatus:
        """Snapshot for health reporting."""
        retry_after = self.retry_after()
        with self._lock:
            return CircuitStatus(
                name=self.name,
                state=self.state,
                consecutive_failures=self.consecutive_failures,
                failure_threshold=self.failure_threshold,
                reset_timeout_ms=self.reset_timeout_ms,
                opened_at=self.opened_at,
                retry_after_seconds=retry_after,
                enabled=self.enabled,
            )

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _transition(self, new_state: CircuitState, action: str) -> None:
        old_state = self.state
        self.state = new_state
        if old_state != new_state:
            logger.info(
                "Circuit breaker %s: %s -> %s (%s)",
                self.name,
                old_state.value,
                new_state.value,
                action,
            )
            audit_log(
                "circuit_state_change",
                provider=self.name,
                old_state=old_state.value,
                new_state=new_state.value,
                action=action,
                consecutive_failures=self.consecutive_failures,
            )

    def _admit(self) -> Optional[bool]:
        # None: rejected. True: the HALF_OPEN trial. False: an ordinary call.
        with self._lock:
            if self.state == CircuitState.CLOSED:
                return False
            if self.state == CircuitState.OPEN:
                if not self._cooldown_elapsed(self._clock()):
                    return None
                self.opened_at = None
                self._transition(CircuitState.HALF_OPEN, "probe")
            if self._trial_in_flight:
                return None
            self._trial_in_flight = True
            return True

    def can_execute(self) -> bool:
        """Claim permission for one call.

        Moves OPEN to HALF_OPEN once the cooldown has elapsed and claims the
        single trial slot. Returns False when the call must be rejected.
        """
        if not self.enabled:
            return True
        return self._admit() is not None

    def _is_trial(self, trial: Optional[bool]) -> bool:
        if trial is None:
            return self.state == CircuitState.HALF_OPEN and self._trial_in_flight
        return trial

    def record_success(self, trial: Optional[bool] = None) -> None:
        """Record a successful call outcome.

        Args:
            trial: Whether the call was admitted as the HALF_OPEN trial.
                ``None`` infers it from the current state. Calls admitted
                while CLOSED that finish after the breaker opened leave
                the state untouched.
        """
        with self._lock:
            if self._is_trial(trial):
                self._trial_in_flight = False
            elif self.state != CircuitState.CLOSED:
                return
            self.consecutive_failures = 0
            self.opened_at = None
            self._transition(CircuitState.CLOSED, "recovery")

    def record_failure(self, trial: Optional[bool] = None) -> None:
        """Record a failed call outcome.

        Args:
            trial: Whether the call was admitted as the HALF_OPEN trial.
                ``None`` infers it from the current state.
        """
        with self._lock:
            self.consecutive_failures += 1
            if self._is_trial(trial):
                self._trial_in_flight = False
                self.opened_at = self._clock()
                self._transition(CircuitState.OPEN, "trial_failed")
                return

            if (
                self.state == CircuitState.CLOSED
                and self.consecutive_failures >= self.failure_threshold
            ):
                self.opened_at = self._clock()
                self._transition(CircuitState.OPEN, "tripped")
                logger.warning(
                    "Circuit breaker %s opened after %d failures",
                    self.name,
                    self.consecutive_failures,
                )

    def release(self, trial: bool = True) -> None:
        """Free a claimed trial slot without recording an outcome."""
        if not trial:
            return
        with self._lock:
            self._trial_in_flight = False

    def reset(self) -> None:
        """Return to CLOSED with zeroed counters."""
        with self._lock:
            self.consecutive_failures = 0
            self.opened_at = None
            self._trial_in_flight = False
            self._transition(CircuitState.CLOSED, "reset")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection.

        Raises:
            CircuitBreakerError: If the breaker rejects the call; the
                operation is not invoked.
            Exception: Whatever the operation raised.
        """
        if not self.enabled:
            return await operation()

        trial = self._admit()
        if trial is None:
            raise CircuitBreakerError(
                f"Circuit breaker open for {self.name}",
                breaker_name=self.name,
                state=self.state,
                retry_after=self.retry_after(),
            )

        try:
            result = await operation()
        except asyncio.CancelledError:
            self.release(trial)
            raise
        except Exception as exc:
            if self._failure_filter(exc):
                self.record_failure(trial)
            else:
                self.release(trial)
            raise

        self.record_success(trial)
        return result
