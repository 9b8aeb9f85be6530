"""Accept loop and session bookkeeping for the chat server."""

from chat_server.network.manager import SessionManager
from chat_server.network.registry import SessionRegistry

__all__ = ["SessionManager", "SessionRegistry"]
