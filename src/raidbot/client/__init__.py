"""Client for the raidbot chat endpoint."""

from raidbot.client.session import ChatClient, ChatSession, SessionState

__all__ = ["ChatClient", "ChatSession", "SessionState"]
