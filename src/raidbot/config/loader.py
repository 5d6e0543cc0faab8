"""ServiceConfig loading logic.

Provides ``_ServiceConfigLoader``, a mixin whose methods are inherited by
``ServiceConfig`` (defined in ``server.py``), keeping ``server.py`` focused
on field definitions and simple accessors.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, cast

if TYPE_CHECKING:
    from raidbot.config.server import ServiceConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from raidbot.config.domains import (
    CircuitBreakerSettings,
    ClientSettings,
    ProviderSettings,
    RateLimitSettings,
    RetrySettings,
)
from raidbot.config.parsing import (
    _parse_bool,
    _parse_float,
    _parse_int,
    _parse_list,
    _try_parse_bool,
)
from raidbot.config.profiles import _ENV_VAR, apply_profile

logger = logging.getLogger(__name__)

# Credential and model env vars per provider
_PROVIDER_ENV_VARS: Dict[str, Dict[str, str]] = {
    "gemini": {"api_key": "GEMINI_API_KEY", "model": "GEMINI_MODEL"},
    "groq": {"api_key": "GROQ_API_KEY", "model": "GROQ_MODEL"},
}


class _ServiceConfigLoader:
    """Mixin providing config-loading methods for ``ServiceConfig``.

    At runtime ``self`` is always a ``ServiceConfig`` instance.
    """

    if TYPE_CHECKING:
        environment: str
        log_level: str
        structured_logging: bool
        host: str
        port: int
        cors_origins: List[str]
        request_timeout: float
        max_message_length: int
        system_prompt: str
        provider_order: List[str]
        providers: Dict[str, ProviderSettings]
        retry: RetrySettings
        circuit_breaker: CircuitBreakerSettings
        rate_limit: RateLimitSettings
        client: ClientSettings

    @classmethod
    def from_env(
        cls,
        config_file: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> "ServiceConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Project TOML config (./raidbot.toml)
        3. XDG config (~/.config/raidbot/config.toml)
        4. Environment profile (RAIDBOT_ENV: development, production, test)
        5. Default values
        """
        config = cls()
        apply_profile(cast("ServiceConfig", config), environment or os.environ.get(_ENV_VAR, ""))

        toml_path = config_file or os.environ.get("RAIDBOT_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
            xdg_config = Path(xdg_config_home) / "raidbot" / "config.toml"
            if xdg_config.exists():
                config._load_toml(xdg_config)
                logger.debug(f"Loaded XDG config from {xdg_config}")

            project_config = Path("raidbot.toml")
            if project_config.exists():
                config._load_toml(project_config)
                logger.debug(f"Loaded project config from {project_config}")

        config._load_env()
        return cast("ServiceConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            return

        # Logging settings
        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "structured" in log:
                self.structured_logging = _parse_bool(log["structured"])

        # Server settings
        if "server" in data:
            srv = data["server"]
            if "host" in srv:
                self.host = str(srv["host"])
            if "port" in srv:
                self.port = int(srv["port"])
            if "cors_origins" in srv:
                self.cors_origins = _parse_list(srv["cors_origins"])
            if "request_timeout" in srv:
                self.request_timeout = float(srv["request_timeout"])
            if "max_message_length" in srv:
                self.max_message_length = int(srv["max_message_length"])
            if "system_prompt" in srv:
                self.system_prompt = str(srv["system_prompt"])

        if "retry" in data:
            self.retry = RetrySettings.from_toml_dict(
                {**self._as_dict(self.retry), **data["retry"]}
            )
        if "circuit_breaker" in data:
            self.circuit_breaker = CircuitBreakerSettings.from_toml_dict(
                {**self._as_dict(self.circuit_breaker), **data["circuit_breaker"]}
            )
        if "rate_limit" in data:
            self.rate_limit = RateLimitSettings.from_toml_dict(
                {**self._as_dict(self.rate_limit), **data["rate_limit"]}
            )
        if "client" in data:
            cli = data["client"]
            merged = {**self._as_dict(self.client), **cli}
            merged["retry"] = {**self._as_dict(self.client.retry), **cli.get("retry", {})}
            merged["circuit_breaker"] = {
                **self._as_dict(self.client.circuit_breaker),
                **cli.get("circuit_breaker", {}),
            }
            self.client = ClientSettings.from_toml_dict(merged)

        # Provider settings
        if "providers" in data:
            prov = data["providers"]
            if "order" in prov:
                self.provider_order = _parse_list(prov["order"])
            for name, table in prov.items():
                if isinstance(table, dict):
                    settings = ProviderSettings.from_toml_dict(table)
                    existing = self.providers.get(name)
                    if existing is not None:
                        settings.api_key = existing.api_key
                    self.providers[name] = settings

        logger.info(f"Loaded config from {path}")

    @staticmethod
    def _as_dict(settings: Any) -> Dict[str, Any]:
        return dict(vars(settings))

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("RAIDBOT_LOG_LEVEL"):
            self.log_level = level.upper()

        if structured := os.environ.get("RAIDBOT_STRUCTURED_LOGGING"):
            parsed = _try_parse_bool(structured)
            if parsed is not None:
                self.structured_logging = parsed

        if cors := os.environ.get("RAIDBOT_CORS_ORIGINS"):
            self.cors_origins = _parse_list(cors)

        if timeout := os.environ.get("RAIDBOT_REQUEST_TIMEOUT"):
            self.request_timeout = _parse_float(timeout, "RAIDBOT_REQUEST_TIMEOUT", self.request_timeout)

        # Retry settings
        if attempts := os.environ.get("RAIDBOT_MAX_ATTEMPTS"):
            self.retry.max_attempts = _parse_int(attempts, "RAIDBOT_MAX_ATTEMPTS", self.retry.max_attempts)
        if base := os.environ.get("RAIDBOT_BASE_DELAY_MS"):
            self.retry.base_delay_ms = _parse_int(base, "RAIDBOT_BASE_DELAY_MS", self.retry.base_delay_ms)
        if ceiling := os.environ.get("RAIDBOT_MAX_DELAY_MS"):
            self.retry.max_delay_ms = _parse_int(ceiling, "RAIDBOT_MAX_DELAY_MS", self.retry.max_delay_ms)

        # Circuit breaker settings
        if enabled := os.environ.get("RAIDBOT_CIRCUIT_BREAKER_ENABLED"):
            parsed = _try_parse_bool(enabled)
            if parsed is not None:
                self.circuit_breaker.enabled = parsed
        if threshold := os.environ.get("RAIDBOT_CIRCUIT_FAILURE_THRESHOLD"):
            self.circuit_breaker.failure_threshold = _parse_int(
                threshold, "RAIDBOT_CIRCUIT_FAILURE_THRESHOLD", self.circuit_breaker.failure_threshold
            )
        if reset := os.environ.get("RAIDBOT_CIRCUIT_RESET_TIMEOUT_MS"):
            self.circuit_breaker.reset_timeout_ms = _parse_int(
                reset, "RAIDBOT_CIRCUIT_RESET_TIMEOUT_MS", self.circuit_breaker.reset_timeout_ms
            )

        if rpm := os.environ.get("RAIDBOT_RATE_LIMIT_RPM"):
            self.rate_limit.requests_per_minute = _parse_int(
                rpm, "RAIDBOT_RATE_LIMIT_RPM", self.rate_limit.requests_per_minute
            )

        # Providers
        if order := os.environ.get("RAIDBOT_PROVIDER_ORDER"):
            self.provider_order = _parse_list(order)
        for name, env_vars in _PROVIDER_ENV_VARS.items():
            settings = self.providers.setdefault(name, ProviderSettings())
            api_key = os.environ.get(env_vars["api_key"], "").strip()
            if api_key:
                settings.api_key = api_key
            if model := os.environ.get(env_vars["model"]):
                settings.model = model
