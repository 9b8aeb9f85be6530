"""Server-side session handler: one generated reply per received message."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from chat_server.config.settings import ServerSettings
from chat_server.replies.engine import ReplyEngine
from chat_shared.errors import ChatError, NotConnected
from chat_shared.network.session import Session
from chat_shared.protocol.conventions import is_disconnect_request

LOGGER = logging.getLogger(__name__)


@dataclass
class ReplyResponder:
    """Generates a reply for each message and sends it back on the same session.

    The disconnect sentinel is answered first and then closes the session.
    """

    engine: ReplyEngine
    settings: ServerSettings
    lookup: Callable[[str], Optional[Session]]

    async def __call__(self, session_id: str, message: bytes) -> None:
        session = self.lookup(session_id)
        if session is None:
            LOGGER.debug("Dropping message for unknown session %s", session_id)
            return
        text = message.decode(self.settings.encoding, errors="replace")
        LOGGER.debug("Session %s received %r", session_id, text)

        reply = await self._generate(session_id, text)
        try:
            await session.send(reply)
        except NotConnected:
            LOGGER.info("Session %s closed before the reply was sent", session_id)
            return
        except ChatError as exc:
            LOGGER.warning("Session %s reply not delivered: %s", session_id, exc)
            return
        LOGGER.debug("Session %s replied %r", session_id, reply)

        if is_disconnect_request(text, self.settings.disconnect_sentinel):
            LOGGER.info("Session %s asked to disconnect", session_id)
            await session.disconnect()

    async def _generate(self, session_id: str, text: str) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.engine.generate_reply, text),
                timeout=self.settings.reply_timeout_seconds,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Reply generation for session %s exceeded %.2fs",
                session_id,
                self.settings.reply_timeout_seconds,
            )
            return self.settings.timeout_reply
        except Exception:  # noqa: BLE001
            LOGGER.exception("Reply generation failed for session %s", session_id)
            return self.settings.error_reply
