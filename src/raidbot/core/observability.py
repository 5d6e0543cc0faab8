"""Audit logging and secret redaction.

Resilience decisions (retries, breaker transitions, provider fallbacks) are
emitted as structured audit events on a dedicated logger so they can be
filtered apart from regular application logs. Correlation ids are pulled
from request context automatically.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from raidbot.core.context import get_correlation_id

logger = logging.getLogger(__name__)

# Detects api keys / bearer tokens / key query parameters in free text
_SECRET_PATTERN = re.compile(
    r"(?i)"
    r"(?:"
    r"(?:api[_-]?key|key|token|bearer|authorization|secret|password|credential)"
    r"[\s:=]+"
    r")"
    r"['\"]?([^\s'\"&]{8,})['\"]?",
)


def redact_secrets(text: str) -> str:
    """Remove API keys and sensitive tokens from a text string.

    Scans for patterns like ``key=...``, ``Bearer ...``, ``token: ...`` and
    replaces the secret portion with ``****``.
    """
    if not text:
        return text

    def _replace(match: "re.Match[str]") -> str:
        return match.group(0).replace(match.group(1), "****")

    return _SECRET_PATTERN.sub(_replace, text)


class AuditEventType(Enum):
    """Types of resilience audit events."""

    RETRY_ATTEMPT = "retry_attempt"
    CIRCUIT_STATE_CHANGE = "circuit_state_change"
    PROVIDER_FAILURE = "provider_failure"
    PROVIDER_FALLBACK = "provider_fallback"
    REQUEST_COMPLETED = "request_completed"
    RATE_LIMIT = "rate_limit"
    OTHER = "other"


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.correlation_id is None:
            self.correlation_id = get_correlation_id() or None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        return result


class AuditLogger:
    """Writes audit events to the ``raidbot.audit`` logger."""

    def __init__(self) -> None:
        self._logger = logging.getLogger("raidbot.audit")

    def log(self, event: AuditEvent) -> None:
        self._logger.info(f"AUDIT: {event.event_type.value}", extra={"audit": event.to_dict()})


_audit = AuditLogger()


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for audit logging.

    Args:
        event_type: One of the ``AuditEventType`` values. Unknown types are
            logged as ``other`` with the original name preserved.
        **details: Additional details; string values are secret-redacted.
    """
    try:
        event_enum = AuditEventType(event_type)
    except ValueError:
        event_enum = AuditEventType.OTHER
        details["original_event_type"] = event_type

    correlation_id = details.pop("correlation_id", None)
    clean = {
        key: redact_secrets(value) if isinstance(value, str) else value
        for key, value in details.items()
    }
    _audit.log(AuditEvent(event_type=event_enum, details=clean, correlation_id=correlation_id))
