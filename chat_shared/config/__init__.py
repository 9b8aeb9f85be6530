"""Configuration primitives shared by the chat client and server."""

from .settings import ChatSettings, get_settings

__all__ = ["ChatSettings", "get_settings"]
