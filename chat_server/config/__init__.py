"""Configuration for the chat server."""

from .settings import ReplyRule, ServerSettings, get_server_settings

__all__ = ["ReplyRule", "ServerSettings", "get_server_settings"]
