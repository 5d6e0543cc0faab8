"""Google Gemini provider adapter.

Uses the ``generateContent`` REST endpoint with the API key passed as a
query parameter. Gemini has no system role in this schema, so the system
prompt and user message are concatenated into a single prompt string.

Example:
    adapter = GeminiAdapter()
    reply = await adapter.call(api_key, "Hello", CallContext())
"""

import logging
from typing import Any, Optional

import httpx

from raidbot.core.providers.base import CallContext, ProviderAdapter, ProviderReply
from raidbot.core.providers.shared import NO_RESPONSE_TEXT, parse_json, raise_for_status

logger = logging.getLogger(__name__)

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_DEFAULT_MODEL = "gemini-1.5-flash"

# Sampling knobs not exposed through request options
GEMINI_TOP_P = 0.8
GEMINI_TOP_K = 40


def build_prompt(message: str, system_prompt: str) -> str:
    """Join the system prompt and user message into one prompt string."""
    if not system_prompt:
        return message
    return f"{system_prompt}\n\nUser: {message}"


def _extract_text(data: dict[str, Any]) -> Optional[str]:
    candidates = data.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts or not isinstance(parts[0], dict):
        return None
    return parts[0].get("text")


class GeminiAdapter(ProviderAdapter):
    """Adapter for the Gemini ``generateContent`` API."""

    name = "gemini"

    def __init__(
        self,
        model: str = GEMINI_DEFAULT_MODEL,
        base_url: str = GEMINI_API_BASE_URL,
    ):
        super().__init__(model, base_url)

    def build_body(self, message: str, context: CallContext) -> dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": build_prompt(message, context.system_prompt)}],
                }
            ],
            "generationConfig": {
                "temperature": context.temperature,
                "maxOutputTokens": context.max_tokens,
                "topP": GEMINI_TOP_P,
                "topK": GEMINI_TOP_K,
            },
        }

    async def call(self, credential: str, message: str, context: CallContext) -> ProviderReply:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = self.build_body(message, context)

        async with httpx.AsyncClient(timeout=context.timeout) as client:
            response = await client.post(url, params={"key": credential}, json=body)

        raise_for_status(self.name, response)
        data = parse_json(self.name, response)

        text = _extract_text(data)
        if not text:
            logger.debug("Gemini returned no content (correlation_id=%s)", context.correlation_id)
            text = NO_RESPONSE_TEXT

        return ProviderReply(text=text, model=self.model, usage=data.get("usageMetadata"))
