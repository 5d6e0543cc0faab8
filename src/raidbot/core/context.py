"""Request-scoped context for correlation ids.

A correlation id is generated once per top-level chat request and carried
through every log line, audit event, and classified error produced while
serving it.

Example:
    from raidbot.core.context import correlation_context, get_correlation_id

    with correlation_context() as cid:
        await service.generate_response("Hello", correlation_id=cid)
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from ulid import ULID

CORRELATION_ID_HEADER = "X-Correlation-ID"
CORRELATION_ID_PREFIX = "ai_"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    """Create a new opaque, sortable correlation id (``ai_<ULID>``)."""
    return f"{CORRELATION_ID_PREFIX}{ULID()}"


def get_correlation_id() -> str:
    """Return the correlation id bound to the current context, or ``""``."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block.

    Args:
        correlation_id: Id to bind. A fresh one is generated when omitted.

    Yields:
        The bound correlation id.
    """
    cid = correlation_id or generate_correlation_id()
    token = correlation_id_var.set(cid)
    try:
        yield cid
    finally:
        correlation_id_var.reset(token)


class CorrelationLogFilter(logging.Filter):
    """Inject the bound correlation id into every log record.

    Usage:
        handler.addFilter(CorrelationLogFilter())
        handler.setFormatter(logging.Formatter("%(correlation_id)s %(message)s"))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True
