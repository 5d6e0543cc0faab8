"""HTTP API for raidbot."""

from raidbot.api.app import ChatRequest, create_app

__all__ = ["ChatRequest", "create_app"]
