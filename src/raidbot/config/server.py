"""ServiceConfig dataclass and global configuration state.

This module defines ``ServiceConfig`` (field declarations and simple
accessors) and the global ``get_config`` / ``set_config`` helpers used by
the CLI and the app factory. Loading logic lives in the
``_ServiceConfigLoader`` mixin (``loader.py``).
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from raidbot.config.domains import (
    CircuitBreakerSettings,
    ClientSettings,
    ProviderSettings,
    RateLimitSettings,
    RetrySettings,
)
from raidbot.config.loader import _ServiceConfigLoader
from raidbot.core.context import CorrelationLogFilter
from raidbot.core.providers.base import DEFAULT_SYSTEM_PROMPT

_LOG_HANDLER_NAME = "raidbot.stderr"
_TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
_JSON_LOG_FORMAT = (
    '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s",'
    '"correlation_id":"%(correlation_id)s","message":"%(message)s"}'
)


def _default_providers() -> Dict[str, ProviderSettings]:
    return {"gemini": ProviderSettings(), "groq": ProviderSettings()}


@dataclass
class ServiceConfig(_ServiceConfigLoader):
    """Service configuration with support for env vars and TOML overrides."""

    environment: str = "development"

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = False

    # HTTP server configuration
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Request handling
    request_timeout: float = 25.0
    max_message_length: int = 4000
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Providers, in priority order
    provider_order: List[str] = field(default_factory=lambda: ["gemini", "groq"])
    providers: Dict[str, ProviderSettings] = field(default_factory=_default_providers)

    # Resilience configuration
    retry: RetrySettings = field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = field(default_factory=CircuitBreakerSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)

    # Client configuration
    client: ClientSettings = field(default_factory=ClientSettings)

    def provider_settings(self, name: str) -> ProviderSettings:
        return self.providers.get(name) or ProviderSettings()

    def configured_providers(self) -> List[str]:
        """Names from ``provider_order`` that have a credential."""
        return [name for name in self.provider_order if self.provider_settings(name).configured]

    def passthrough(self) -> "ServiceConfig":
        """Copy of this config with a single attempt and breakers disabled."""
        return replace(
            self,
            retry=replace(self.retry, max_attempts=1),
            circuit_breaker=replace(self.circuit_breaker, enabled=False),
        )

    def setup_logging(self) -> None:
        """Attach a stderr handler to the ``raidbot`` logger.

        Every line carries the request's correlation id. Calling this again
        replaces the handler installed by the previous call.
        """
        level = getattr(logging, self.log_level, logging.INFO)
        formatter = logging.Formatter(_JSON_LOG_FORMAT if self.structured_logging else _TEXT_LOG_FORMAT)

        handler = logging.StreamHandler()
        handler.set_name(_LOG_HANDLER_NAME)
        handler.addFilter(CorrelationLogFilter())
        handler.setFormatter(formatter)

        package_logger = logging.getLogger("raidbot")
        for existing in list(package_logger.handlers):
            if existing.get_name() == _LOG_HANDLER_NAME:
                package_logger.removeHandler(existing)
        package_logger.setLevel(level)
        package_logger.addHandler(handler)


# Global configuration instance
_config: Optional[ServiceConfig] = None


def get_config() -> ServiceConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServiceConfig.from_env()
    return _config


def set_config(config: Optional[ServiceConfig]) -> None:
    """Set (or clear, with None) the global configuration instance."""
    global _config
    _config = config
