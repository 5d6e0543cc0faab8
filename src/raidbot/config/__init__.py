"""Configuration package for raidbot.

Sub-modules:
    parsing  – Boolean/list/number parsing helpers
    domains  – RetrySettings, CircuitBreakerSettings, RateLimitSettings,
               ProviderSettings, ClientSettings
    profiles – development / production / test environment defaults
    server   – ServiceConfig dataclass, get_config/set_config globals
    loader   – ServiceConfig loading mixin (_ServiceConfigLoader)
"""

from raidbot.config.domains import (  # noqa: F401
    CircuitBreakerSettings,
    ClientSettings,
    ProviderSettings,
    RateLimitSettings,
    RetrySettings,
)
from raidbot.config.parsing import (  # noqa: F401
    _parse_bool,
    _parse_list,
    _try_parse_bool,
)
from raidbot.config.profiles import PROFILES, apply_profile  # noqa: F401
from raidbot.config.server import (  # noqa: F401
    ServiceConfig,
    get_config,
    set_config,
)
