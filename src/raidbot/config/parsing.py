"""Parsing and normalization helpers for configuration values."""

import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _try_parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return None


def _parse_list(value: Any) -> List[str]:
    """Accept a TOML array or a comma-separated string."""
    if isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = str(value).split(",")
    return [item.strip() for item in items if item.strip()]


def _parse_int(value: Any, name: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s: %r, using %d", name, value, default)
        return default


def _parse_float(value: Any, name: str, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid number for %s: %r, using %s", name, value, default)
        return default
