"""In-process transport pair for embedding and offline testing."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from chat_shared.network.transport.base import BaseTransport
from chat_shared.protocol.framing import LineDecoder

LOGGER = logging.getLogger(__name__)


class MemoryTransport(BaseTransport):
    """Queue-backed transport behaving like one end of a TCP stream."""

    def __init__(self, name: str = "memory", *, max_message_bytes: int = 2048) -> None:
        self._name = name
        self._inbox: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._decoder = LineDecoder(max_message_bytes)
        self._other: Optional[MemoryTransport] = None
        self._closed = False
        self._eof = False
        self.sent: list[bytes] = []

    @classmethod
    def pair(cls, *, max_message_bytes: int = 2048) -> tuple[MemoryTransport, MemoryTransport]:
        left = cls("memory-left", max_message_bytes=max_message_bytes)
        right = cls("memory-right", max_message_bytes=max_message_bytes)
        left._other = right
        right._other = left
        return left, right

    @property
    def peer(self) -> Optional[str]:
        return self._other._name if self._other else None

    @property
    def closed(self) -> bool:
        return self._closed

    async def read_message(self) -> Optional[bytes]:
        if self._eof:
            return None
        message = await self._inbox.get()
        if message is None:
            self._eof = True
        return message

    async def write_message(self, frame: bytes) -> None:
        other = self._other
        if self._closed or other is None or other._closed:
            raise ConnectionResetError("Memory transport closed")
        self.sent.append(frame)
        for message in other._decoder.feed(frame):
            other._inbox.put_nowait(message)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        LOGGER.debug("Memory transport %s close()", self._name)
        self._inbox.put_nowait(None)
        if self._other and not self._other._closed:
            self._other._inbox.put_nowait(None)
