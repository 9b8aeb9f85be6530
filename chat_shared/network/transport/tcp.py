"""TCP stream transport with newline framing."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Optional

from chat_shared.config import ChatSettings
from chat_shared.network.transport.base import BaseTransport
from chat_shared.protocol.framing import LineDecoder

LOGGER = logging.getLogger(__name__)


class TcpTransport(BaseTransport):
    """Wraps an asyncio stream pair; reads are split into complete lines."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        max_message_bytes: int = 2048,
        read_chunk_bytes: int = 4096,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._decoder = LineDecoder(max_message_bytes)
        self._ready: Deque[bytes] = deque()
        self._read_chunk_bytes = read_chunk_bytes
        self._closed = False
        peername = writer.get_extra_info("peername")
        if isinstance(peername, tuple) and len(peername) >= 2:
            self._peer: Optional[str] = f"{peername[0]}:{peername[1]}"
        else:
            self._peer = str(peername) if peername else None

    @classmethod
    def from_streams(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        settings: ChatSettings,
    ) -> TcpTransport:
        return cls(
            reader,
            writer,
            max_message_bytes=settings.max_message_bytes,
            read_chunk_bytes=settings.read_chunk_bytes,
        )

    @property
    def peer(self) -> Optional[str]:
        return self._peer

    @property
    def closed(self) -> bool:
        return self._closed

    async def read_message(self) -> Optional[bytes]:
        while not self._ready:
            chunk = await self._reader.read(self._read_chunk_bytes)
            if not chunk:
                if self._decoder.pending:
                    LOGGER.debug(
                        "Discarding %s bytes of unterminated data from %s",
                        self._decoder.pending,
                        self._peer,
                    )
                self._decoder.reset()
                return None
            dropped = self._decoder.dropped
            self._ready.extend(self._decoder.feed(chunk))
            if self._decoder.dropped != dropped:
                LOGGER.warning(
                    "Dropped oversized message from %s (limit %s bytes)",
                    self._peer,
                    self._decoder.max_bytes,
                )
        return self._ready.popleft()

    async def write_message(self, frame: bytes) -> None:
        if self._closed:
            raise ConnectionResetError("TCP transport already closed")
        LOGGER.debug("TCP send to %s: %r", self._peer, frame)
        self._writer.write(frame)
        await self._writer.drain()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        LOGGER.debug("Closing TCP transport to %s", self._peer)
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress TCP close error", exc_info=True)


async def open_tcp_transport(host: str, port: int, settings: ChatSettings) -> TcpTransport:
    """Open a client connection; timeouts are applied by the caller."""

    LOGGER.info("Connecting to chat server at %s:%s", host, port)
    reader, writer = await asyncio.open_connection(host, port)
    return TcpTransport.from_streams(reader, writer, settings)
