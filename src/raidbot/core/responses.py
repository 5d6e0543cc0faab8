"""
Response envelope returned by the orchestration service and the HTTP API.

Exactly one of two shapes is produced:

    success: {"success": true, "response", "model", "provider", "usage"?, "correlationId"}
    failure: {"success": false, "error", "type", "correlationId"}

The failure ``error`` is always the user-safe message for ``type``; upstream
error text and tracebacks never appear in an envelope.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from raidbot.core.context import get_correlation_id
from raidbot.core.errors.classified import ErrorKind
from raidbot.core.errors.messages import user_message
from raidbot.core.providers.base import ProviderReply

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Uniform result of one chat request.

    Attributes:
        success: Whether a provider produced a reply
        correlation_id: Id shared by every log line for this request
        response: Generated text (success only)
        model: Model label (success only)
        provider: Name of the provider that answered (success only)
        usage: Provider token accounting, if reported (success only)
        error: User-safe message (failure only)
        type: Error kind (failure only)
    """

    success: bool
    correlation_id: str
    response: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    type: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase ``correlationId``)."""
        if self.success:
            data: Dict[str, Any] = {
                "success": True,
                "response": self.response,
                "model": self.model,
                "provider": self.provider,
            }
            if self.usage is not None:
                data["usage"] = self.usage
        else:
            data = {
                "success": False,
                "error": self.error,
                "type": self.type.value if self.type else ErrorKind.UNKNOWN.value,
            }
        data["correlationId"] = self.correlation_id
        return data


def success_envelope(
    reply: ProviderReply,
    provider: str,
    correlation_id: Optional[str] = None,
) -> ResponseEnvelope:
    """Build a success envelope from a provider reply."""
    return ResponseEnvelope(
        success=True,
        correlation_id=correlation_id or get_correlation_id(),
        response=reply.text,
        model=reply.model,
        provider=provider,
        usage=reply.usage,
    )


def failure_envelope(
    kind: ErrorKind,
    correlation_id: Optional[str] = None,
) -> ResponseEnvelope:
    """Build a failure envelope carrying only the user-safe message for ``kind``."""
    return ResponseEnvelope(
        success=False,
        correlation_id=correlation_id or get_correlation_id(),
        error=user_message(kind),
        type=kind,
    )
