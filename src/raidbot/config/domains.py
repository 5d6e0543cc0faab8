"""Domain-specific configuration dataclasses.

Small, focused settings for retry, circuit breaking, endpoint rate limiting,
upstream providers and the HTTP client.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from raidbot.config.parsing import _parse_bool
from raidbot.core.resilience.models import RetryPolicy
from raidbot.core.resilience.rate_limit import RateLimitConfig


@dataclass
class RetrySettings:
    """Backoff configuration for provider calls.

    Attributes:
        max_attempts: Total attempts per provider, including the first
        base_delay_ms: Delay before the first retry
        max_delay_ms: Delay ceiling before jitter
        backoff_multiplier: Growth factor per retry
        jitter: Randomize delays in [0.5, 1.0] of the computed value
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RetrySettings":
        """Create settings from a TOML dict (typically the [retry] section)."""
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            base_delay_ms=int(data.get("base_delay_ms", 1000)),
            max_delay_ms=int(data.get("max_delay_ms", 10000)),
            backoff_multiplier=float(data.get("backoff_multiplier", 2.0)),
            jitter=_parse_bool(data.get("jitter", True)),
        )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
            jitter_enabled=self.jitter,
        )


@dataclass
class CircuitBreakerSettings:
    """Per-provider circuit breaker configuration.

    Attributes:
        enabled: When False, breakers pass every call straight through
        failure_threshold: Consecutive failures that open the circuit
        reset_timeout_ms: Cooldown before a half-open trial is allowed
    """

    enabled: bool = True
    failure_threshold: int = 5
    reset_timeout_ms: int = 60000

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CircuitBreakerSettings":
        """Create settings from a TOML dict (typically [circuit_breaker])."""
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            failure_threshold=int(data.get("failure_threshold", 5)),
            reset_timeout_ms=int(data.get("reset_timeout_ms", 60000)),
        )


@dataclass
class RateLimitSettings:
    """Endpoint rate limiting (token bucket per client address)."""

    enabled: bool = True
    requests_per_minute: int = 30
    burst_limit: int = 10

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RateLimitSettings":
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            requests_per_minute=int(data.get("requests_per_minute", 30)),
            burst_limit=int(data.get("burst_limit", 10)),
        )

    def to_limiter_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            requests_per_minute=self.requests_per_minute,
            burst_limit=self.burst_limit,
            enabled=self.enabled,
        )


@dataclass
class ProviderSettings:
    """Settings for one upstream provider.

    Attributes:
        api_key: Credential; the provider is excluded from the chain when unset
        model: Model identifier (None = adapter default)
        base_url: API base URL override (None = adapter default)
        timeout: Per-attempt timeout override in seconds
    """

    api_key: Optional[str] = field(default=None, repr=False)
    model: Optional[str] = None
    base_url: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ProviderSettings":
        """Create settings from a [providers.<name>] table.

        Credentials are deliberately not read from TOML; use environment
        variables so keys stay out of checked-in files.
        """
        timeout = data.get("timeout")
        return cls(
            model=data.get("model"),
            base_url=data.get("base_url"),
            timeout=float(timeout) if timeout is not None else None,
        )


@dataclass
class ClientSettings:
    """Settings for ``ChatClient`` / ``ChatSession``.

    Attributes:
        api_url: Endpoint the client posts to
        timeout: Per-attempt HTTP timeout in seconds
        max_manual_retries: Cap on user-initiated retries per message
        retry: Backoff for automatic client-side retries
        circuit_breaker: Client-side breaker guarding the endpoint
    """

    api_url: str = "http://127.0.0.1:8000/api/ai"
    timeout: float = 30.0
    max_manual_retries: int = 3
    retry: RetrySettings = field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = field(default_factory=CircuitBreakerSettings)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ClientSettings":
        return cls(
            api_url=str(data.get("api_url", "http://127.0.0.1:8000/api/ai")),
            timeout=float(data.get("timeout", 30.0)),
            max_manual_retries=int(data.get("max_manual_retries", 3)),
            retry=RetrySettings.from_toml_dict(data.get("retry", {})),
            circuit_breaker=CircuitBreakerSettings.from_toml_dict(data.get("circuit_breaker", {})),
        )
