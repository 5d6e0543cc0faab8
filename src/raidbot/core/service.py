"""AI orchestration service.

``AIService`` owns the provider priority chain, one circuit breaker per
provider, the retry manager and the endpoint rate limiter. For each request
it tries providers strictly in order:

    breaker.execute(retry.execute_with_retry(with_timeout(adapter.call(...))))

The first success wins. A ``BAD_REQUEST`` failure stops the chain (the same
input would fail everywhere); any other failure falls through to the next
provider. When the chain is exhausted the caller gets the user-safe message
for the last failure kind.

Credentials are read from the ``ServiceConfig`` handed to the service and
nowhere else.
"""

import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from raidbot.config.server import ServiceConfig
from raidbot.core.context import correlation_context, generate_correlation_id
from raidbot.core.errors.classified import ClassifiedError, ErrorKind
from raidbot.core.errors.resilience import RateLimitWaitError
from raidbot.core.observability import audit_log
from raidbot.core.providers import ADAPTERS
from raidbot.core.providers.base import CallContext, ProviderAdapter, ProviderDescriptor
from raidbot.core.resilience.breaker import CircuitBreaker
from raidbot.core.resilience.classifier import classify
from raidbot.core.resilience.execution import execute_with_resilience, with_timeout
from raidbot.core.resilience.models import CircuitState, Clock, SleepFunc
from raidbot.core.resilience.rate_limit import RateLimitResult, TokenBucketLimiter
from raidbot.core.resilience.retry import RetryManager
from raidbot.core.responses import ResponseEnvelope, failure_envelope, success_envelope

logger = logging.getLogger(__name__)

PROBE_MESSAGE = "Reply with OK."

# Upper bound accepted for the max_tokens request option
_MAX_TOKENS_LIMIT = 8192


class AIService:
    """Multi-provider chat orchestration with retry, circuit breaking and fallback.

    Args:
        config: Service configuration (credentials, resilience settings).
        adapters: Adapter overrides by provider name; defaults come from the
            registered adapter factories.
        clock: Injectable monotonic clock for breakers and the rate limiter.
        sleep_func: Injectable sleep for the retry manager.
        rng: Injectable Random for retry jitter.

    Example:
        >>> service = AIService(ServiceConfig.from_env())
        >>> envelope = await service.generate_response("Hello")
        >>> envelope.to_dict()["success"]
        True
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        adapters: Optional[Mapping[str, ProviderAdapter]] = None,
        clock: Optional[Clock] = None,
        sleep_func: Optional[SleepFunc] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or ServiceConfig()
        self.retry_policy = self.config.retry.to_policy()
        self.retry_manager = RetryManager(self.retry_policy, rng=rng, sleep_func=sleep_func)
        self.rate_limiter = TokenBucketLimiter(
            self.config.rate_limit.to_limiter_config(), clock=clock
        )

        breaker_settings = self.config.circuit_breaker
        self.breakers: Dict[str, CircuitBreaker] = {
            name: CircuitBreaker(
                name,
                failure_threshold=breaker_settings.failure_threshold,
                reset_timeout_ms=breaker_settings.reset_timeout_ms,
                enabled=breaker_settings.enabled,
                clock=clock,
            )
            for name in self.config.provider_order
        }

        self.providers: List[ProviderDescriptor] = self._build_providers(adapters or {})
        logger.info(
            "AIService ready (environment=%s, providers=%s)",
            self.config.environment,
            [p.name for p in self.providers] or "none",
        )

    def _build_providers(self, overrides: Mapping[str, ProviderAdapter]) -> List[ProviderDescriptor]:
        providers: List[ProviderDescriptor] = []
        for name in self.config.provider_order:
            settings = self.config.provider_settings(name)
            if not settings.configured:
                logger.debug("Provider %s has no credential; excluded", name)
                continue

            adapter = overrides.get(name)
            if adapter is None:
                factory = ADAPTERS.get(name)
                if factory is None:
                    logger.warning("Unknown provider '%s' in provider_order; skipped", name)
                    continue
                kwargs: Dict[str, Any] = {}
                if settings.model:
                    kwargs["model"] = settings.model
                if settings.base_url:
                    kwargs["base_url"] = settings.base_url
                adapter = factory(**kwargs)

            providers.append(
                ProviderDescriptor(
                    name=name,
                    credential=settings.api_key or "",
                    adapter=adapter,
                    breaker=self.breakers[name],
                )
            )
        return providers

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def _validate_message(self, message: Any) -> Optional[str]:
        if not isinstance(message, str):
            return "message must be a string"
        if not message.strip():
            return "message is empty"
        if len(message) > self.config.max_message_length:
            return f"message exceeds {self.config.max_message_length} characters"
        return None

    def _build_context(
        self, options: Optional[Mapping[str, Any]], correlation_id: str
    ) -> CallContext:
        """Translate request options into a ``CallContext``.

        Only ``temperature`` and ``max_tokens`` are recognized; other keys
        are ignored.

        Raises:
            ClassifiedError: BAD_REQUEST for invalid option values.
        """
        options = options or {}
        if not isinstance(options, Mapping):
            raise ClassifiedError(ErrorKind.BAD_REQUEST, "options must be an object")

        context = CallContext(
            correlation_id=correlation_id,
            timeout=self.config.request_timeout,
            system_prompt=self.config.system_prompt,
        )
        overrides: Dict[str, Any] = {}

        if options.get("temperature") is not None:
            temperature = options["temperature"]
            if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
                raise ClassifiedError(ErrorKind.BAD_REQUEST, "temperature must be a number")
            if not 0 <= temperature <= 2:
                raise ClassifiedError(ErrorKind.BAD_REQUEST, "temperature must be within [0, 2]")
            overrides["temperature"] = float(temperature)

        if options.get("max_tokens") is not None:
            max_tokens = options["max_tokens"]
            if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
                raise ClassifiedError(ErrorKind.BAD_REQUEST, "max_tokens must be an integer")
            if not 0 < max_tokens <= _MAX_TOKENS_LIMIT:
                raise ClassifiedError(
                    ErrorKind.BAD_REQUEST, f"max_tokens must be within [1, {_MAX_TOKENS_LIMIT}]"
                )
            overrides["max_tokens"] = max_tokens

        if not overrides:
            return context
        return CallContext(**{**vars(context), **overrides})

    def _timeout_for(self, descriptor: ProviderDescriptor) -> float:
        override = self.config.provider_settings(descriptor.name).timeout
        return override if override is not None else self.config.request_timeout

    def _reject(self, kind: ErrorKind, reason: str, started: float) -> ResponseEnvelope:
        logger.info("Request rejected (%s): %s", kind.value, reason)
        audit_log(
            "request_completed",
            success=False,
            error_kind=kind.value,
            reason=reason,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return failure_envelope(kind)

    async def generate_response(
        self,
        message: Any,
        options: Optional[Mapping[str, Any]] = None,
        *,
        correlation_id: Optional[str] = None,
    ) -> ResponseEnvelope:
        """Generate a reply, falling back across providers in priority order.

        Never raises for upstream or validation failures; those become
        failure envelopes. Cancellation propagates to the caller.

        Args:
            message: User message (non-empty string, bounded length).
            options: Optional ``temperature`` / ``max_tokens`` overrides.
            correlation_id: Id to use for this request (generated if omitted).

        Returns:
            ResponseEnvelope (success or failure).
        """
        cid = correlation_id or generate_correlation_id()
        with correlation_context(cid):
            started = time.monotonic()

            reason = self._validate_message(message)
            if reason is not None:
                return self._reject(ErrorKind.BAD_REQUEST, reason, started)

            try:
                context = self._build_context(options, cid)
            except ClassifiedError as exc:
                return self._reject(exc.kind, exc.message, started)

            if not self.providers:
                return self._reject(
                    ErrorKind.CONFIGURATION, "no provider credentials configured", started
                )

            return await self._run_chain(message, context, cid, started)

    async def _run_chain(
        self,
        message: str,
        context: CallContext,
        cid: str,
        started: float,
    ) -> ResponseEnvelope:
        failures: List[ClassifiedError] = []

        for index, descriptor in enumerate(self.providers):
            try:
                reply = await execute_with_resilience(
                    lambda d=descriptor: d.adapter.call(d.credential, message, context),
                    descriptor.name,
                    breaker=descriptor.breaker,
                    retry_manager=self.retry_manager,
                    timeout_seconds=self._timeout_for(descriptor),
                    correlation_id=cid,
                )
            except ClassifiedError as exc:
                failures.append(exc)
                logger.warning(
                    "Provider %s failed: kind=%s status=%s message=%s",
                    descriptor.name,
                    exc.kind.value,
                    exc.status_code,
                    exc.message,
                )
                audit_log("provider_failure", **{"correlation_id": cid, **exc.to_log_dict()})

                if exc.kind is ErrorKind.BAD_REQUEST:
                    break

                if index + 1 < len(self.providers):
                    next_name = self.providers[index + 1].name
                    logger.info("Falling back from %s to %s", descriptor.name, next_name)
                    audit_log(
                        "provider_fallback",
                        from_provider=descriptor.name,
                        to_provider=next_name,
                        reason=exc.kind.value,
                    )
                continue

            audit_log(
                "request_completed",
                success=True,
                provider=descriptor.name,
                model=reply.model,
                failed_providers=[f.provider for f in failures],
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            return success_envelope(reply, descriptor.name, cid)

        last = failures[-1]
        logger.error(
            "All providers failed (%d attempted); last kind=%s",
            len(failures),
            last.kind.value,
        )
        audit_log(
            "request_completed",
            success=False,
            error_kind=last.kind.value,
            failures=[f.to_log_dict() for f in failures],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return failure_envelope(last.kind, cid)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    def check_rate_limit(self, key: str) -> RateLimitResult:
        """Consume one endpoint token for ``key`` (typically a client address).

        Raises:
            RateLimitWaitError: If ``key`` has no token left.
        """
        try:
            return self.rate_limiter.acquire_or_raise(key)
        except RateLimitWaitError as exc:
            audit_log("rate_limit", client=key, reset_in=round(exc.wait_needed or 0.0, 2))
            raise

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Report provider readiness without exposing credentials.

        Provider status is ``healthy`` (credential present, circuit not
        open), ``unavailable`` (circuit open) or ``not_configured``. Overall
        status is ``healthy``, ``degraded`` or ``unconfigured``.
        """
        providers: Dict[str, Dict[str, Any]] = {}
        for name in self.config.provider_order:
            configured = self.config.provider_settings(name).configured
            breaker = self.breakers[name]
            circuit_open = breaker.state == CircuitState.OPEN and not breaker.is_available()
            if not configured:
                status = "not_configured"
            elif circuit_open:
                status = "unavailable"
            else:
                status = "healthy"
            providers[name] = {
                "status": status,
                "configured": configured,
                "circuit": breaker.state.value,
                "failure_count": breaker.consecutive_failures,
            }

        configured_statuses = [p["status"] for p in providers.values() if p["configured"]]
        if not configured_statuses:
            overall = "unconfigured"
        elif all(s == "healthy" for s in configured_statuses):
            overall = "healthy"
        else:
            overall = "degraded"

        return {
            "status": overall,
            "providers": providers,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def probe_providers(self) -> Dict[str, Dict[str, Any]]:
        """Send one test generation to every configured provider.

        Probes bypass retry and circuit breaking so they reflect the
        provider's current state without changing breaker counters.
        """
        results: Dict[str, Dict[str, Any]] = {}
        for descriptor in self.providers:
            cid = generate_correlation_id()
            context = CallContext(
                correlation_id=cid,
                timeout=self._timeout_for(descriptor),
                max_tokens=16,
                system_prompt="",
            )
            started = time.monotonic()
            with correlation_context(cid):
                try:
                    reply = await with_timeout(
                        lambda d=descriptor: d.adapter.call(d.credential, PROBE_MESSAGE, context),
                        self._timeout_for(descriptor),
                    )
                except Exception as exc:
                    error = classify(exc, correlation_id=cid, provider=descriptor.name)
                    logger.warning("Probe of %s failed: %s", descriptor.name, error.message)
                    results[descriptor.name] = {
                        "ok": False,
                        "type": error.kind.value,
                        "latency_ms": int((time.monotonic() - started) * 1000),
                    }
                    continue
            results[descriptor.name] = {
                "ok": True,
                "model": reply.model,
                "latency_ms": int((time.monotonic() - started) * 1000),
            }
        return results
