"""Groq provider adapter.

Groq exposes an OpenAI-compatible chat completions API: a structured
``messages`` list with system and user roles and bearer authentication.
"""

import logging
from typing import Any, Optional

import httpx

from raidbot.core.providers.base import CallContext, ProviderAdapter, ProviderReply
from raidbot.core.providers.shared import NO_RESPONSE_TEXT, parse_json, raise_for_status

logger = logging.getLogger(__name__)

GROQ_API_BASE_URL = "https://api.groq.com/openai/v1"
GROQ_DEFAULT_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"
GROQ_MODEL_PREFIX = "groq:"


def _extract_text(data: dict[str, Any]) -> Optional[str]:
    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    return (choices[0].get("message") or {}).get("content")


class GroqAdapter(ProviderAdapter):
    """Adapter for the Groq chat completions API."""

    name = "groq"

    def __init__(
        self,
        model: str = GROQ_DEFAULT_MODEL,
        base_url: str = GROQ_API_BASE_URL,
    ):
        super().__init__(model, base_url)

    def build_body(self, message: str, context: CallContext) -> dict[str, Any]:
        messages = []
        if context.system_prompt:
            messages.append({"role": "system", "content": context.system_prompt})
        messages.append({"role": "user", "content": message})
        return {
            "model": self.model,
            "messages": messages,
            "temperature": context.temperature,
            "max_tokens": context.max_tokens,
            "top_p": 1,
            "stream": False,
        }

    async def call(self, credential: str, message: str, context: CallContext) -> ProviderReply:
        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {credential}"}

        async with httpx.AsyncClient(timeout=context.timeout) as client:
            response = await client.post(url, headers=headers, json=self.build_body(message, context))

        raise_for_status(self.name, response)
        data = parse_json(self.name, response)

        text = _extract_text(data)
        if not text:
            logger.debug("Groq returned no content (correlation_id=%s)", context.correlation_id)
            text = NO_RESPONSE_TEXT

        return ProviderReply(
            text=text,
            model=f"{GROQ_MODEL_PREFIX}{self.model}",
            usage=data.get("usage"),
        )
