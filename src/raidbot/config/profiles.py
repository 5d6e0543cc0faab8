"""Environment profiles.

A profile supplies defaults for one deployment environment. It is applied
before TOML files and environment variables, so both override it.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from raidbot.config.server import ServiceConfig

logger = logging.getLogger(__name__)

_ENV_VAR = "RAIDBOT_ENV"
_DEFAULT_ENVIRONMENT = "development"

PROFILES: Dict[str, Dict[str, Any]] = {
    "development": {
        "log_level": "DEBUG",
        "request_timeout": 30.0,
        "max_attempts": 3,
        "base_delay_ms": 1000,
        "max_delay_ms": 10000,
        "circuit_enabled": True,
        "failure_threshold": 5,
        "reset_timeout_ms": 60000,
    },
    # Request timeout stays under typical 30s serverless limits
    "production": {
        "log_level": "ERROR",
        "request_timeout": 25.0,
        "max_attempts": 3,
        "base_delay_ms": 1000,
        "max_delay_ms": 10000,
        "circuit_enabled": True,
        "failure_threshold": 3,
        "reset_timeout_ms": 30000,
    },
    "test": {
        "log_level": "DEBUG",
        "request_timeout": 5.0,
        "max_attempts": 1,
        "base_delay_ms": 100,
        "max_delay_ms": 1000,
        "circuit_enabled": False,
        "failure_threshold": 10,
        "reset_timeout_ms": 10000,
    },
}


def apply_profile(config: "ServiceConfig", name: str) -> None:
    """Apply the named profile's defaults to ``config`` in place.

    Unknown names log a warning and fall back to ``development``.
    """
    normalized = (name or _DEFAULT_ENVIRONMENT).strip().lower()
    if normalized not in PROFILES:
        logger.warning(
            "Unknown environment '%s'. Falling back to '%s'. Valid options: %s",
            name,
            _DEFAULT_ENVIRONMENT,
            ", ".join(sorted(PROFILES)),
        )
        normalized = _DEFAULT_ENVIRONMENT

    profile = PROFILES[normalized]
    config.environment = normalized
    config.log_level = profile["log_level"]
    config.request_timeout = profile["request_timeout"]
    config.retry.max_attempts = profile["max_attempts"]
    config.retry.base_delay_ms = profile["base_delay_ms"]
    config.retry.max_delay_ms = profile["max_delay_ms"]
    config.circuit_breaker.enabled = profile["circuit_enabled"]
    config.circuit_breaker.failure_threshold = profile["failure_threshold"]
    config.circuit_breaker.reset_timeout_ms = profile["reset_timeout_ms"]
