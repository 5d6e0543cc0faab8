"""Abstract base class for chat providers.

This module defines the ProviderAdapter interface that concrete LLM
providers implement. An adapter performs exactly one HTTP request per
``call``; it never retries and never swallows errors. Retry, circuit
breaking and fallback are composed around it by the orchestration service.

Example usage:
    class EchoAdapter(ProviderAdapter):
        name = "echo"

        async def call(self, credential, message, context):
            return ProviderReply(text=message, model="echo-1")
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from raidbot.core.resilience.breaker import CircuitBreaker

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TIMEOUT = 25.0
DEFAULT_SYSTEM_PROMPT = (
    "You are RaidBot, a helpful assistant. Answer clearly and concisely."
)


@dataclass(frozen=True)
class ProviderReply:
    """Normalized reply from any provider.

    Attributes:
        text: Generated text (placeholder when the upstream produced none).
        model: Model label reported back to callers.
        usage: Provider-specific token accounting, when reported.
    """

    text: str
    model: str
    usage: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CallContext:
    """Per-request knobs handed to an adapter.

    Attributes:
        correlation_id: Id of the top-level request (for logging only).
        timeout: Per-attempt network timeout in seconds.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens.
        system_prompt: Instruction text prepended to the user message.
    """

    correlation_id: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class ProviderAdapter(ABC):
    """Interface for a single LLM HTTP API.

    Subclasses set ``name`` and implement ``call``. ``call`` either returns a
    ``ProviderReply`` or raises a raw error (``ProviderHTTPError``,
    ``ProviderParseError`` or an ``httpx`` transport error) for the
    classifier to interpret.
    """

    name: str = ""

    def __init__(self, model: str, base_url: str):
        self.model = model
        self.base_url = base_url.rstrip("/")

    @abstractmethod
    async def call(self, credential: str, message: str, context: CallContext) -> ProviderReply:
        """Generate a reply for ``message``.

        Args:
            credential: Provider API key.
            message: User message text.
            context: Request knobs (timeout, sampling, system prompt).

        Returns:
            ProviderReply with the generated text.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


@dataclass
class ProviderDescriptor:
    """One entry of the orchestration service's priority chain."""

    name: str
    credential: str = field(repr=False)
    adapter: ProviderAdapter
    breaker: "CircuitBreaker"
