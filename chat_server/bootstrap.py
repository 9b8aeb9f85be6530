"""Chat server entrypoint wiring settings, reply engine and session manager."""

from __future__ import annotations

import logging
from typing import Optional

from chat_server.config import ServerSettings, get_server_settings
from chat_server.network.manager import SessionManager
from chat_server.replies.engine import KeywordReplyEngine, ReplyEngine

LOGGER = logging.getLogger(__name__)


def build_manager(settings: Optional[ServerSettings] = None, engine: Optional[ReplyEngine] = None) -> SessionManager:
    """Construct a session manager with the configured reply strategy."""

    settings = settings or get_server_settings()
    resolved = engine or KeywordReplyEngine.from_settings(settings)
    LOGGER.debug(
        "Initialising chat server with %s (%s rules, %s fallbacks)",
        type(resolved).__name__,
        len(settings.reply_rules),
        len(settings.fallback_replies),
    )
    return SessionManager(settings, engine=resolved)


async def serve_forever(settings: Optional[ServerSettings] = None) -> None:
    """Start the chat server and keep the process alive until cancelled."""

    manager = build_manager(settings)
    await manager.serve_forever()
