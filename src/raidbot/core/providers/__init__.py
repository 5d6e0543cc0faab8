"""Chat provider adapters.

Concrete adapters are registered by name in ``ADAPTERS`` so the service can
build its priority chain from configuration.
"""

from typing import Callable, Dict

from raidbot.core.providers.base import (
    DEFAULT_SYSTEM_PROMPT,
    CallContext,
    ProviderAdapter,
    ProviderDescriptor,
    ProviderReply,
)
from raidbot.core.providers.gemini import GeminiAdapter
from raidbot.core.providers.groq import GroqAdapter
from raidbot.core.providers.shared import NO_RESPONSE_TEXT

AdapterFactory = Callable[..., ProviderAdapter]

ADAPTERS: Dict[str, AdapterFactory] = {
    "gemini": GeminiAdapter,
    "groq": GroqAdapter,
}


def available_providers() -> list[str]:
    """Names of all registered providers."""
    return list(ADAPTERS)


__all__ = [
    "ADAPTERS",
    "AdapterFactory",
    "CallContext",
    "DEFAULT_SYSTEM_PROMPT",
    "GeminiAdapter",
    "GroqAdapter",
    "NO_RESPONSE_TEXT",
    "ProviderAdapter",
    "ProviderDescriptor",
    "ProviderReply",
    "available_providers",
]
