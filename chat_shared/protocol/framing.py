"""Newline framing for chat messages on a byte stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from chat_shared.errors import InvalidMessage, MessageTooLong

LINE_TERMINATOR = b"\n"


def _to_payload(message: str | bytes, *, encoding: str = "utf-8") -> bytes:
    """Return the raw payload bytes for a str or bytes message."""

    if isinstance(message, str):
        return message.encode(encoding)
    return bytes(message)


def encode_message(message: str | bytes, *, max_bytes: int, encoding: str = "utf-8") -> bytes:
    """Validate a message and return it framed for the wire.

    One trailing ``\\n`` or ``\\r\\n`` is tolerated and dropped; any other line
    terminator inside the payload would split the message and is rejected.
    """

    payload = _to_payload(message, encoding=encoding)
    if payload.endswith(b"\r\n"):
        payload = payload[:-2]
    elif payload.endswith(LINE_TERMINATOR):
        payload = payload[:-1]
    if b"\n" in payload or b"\r" in payload:
        raise InvalidMessage("Message must not contain line terminators")
    if len(payload) > max_bytes:
        raise MessageTooLong(len(payload), max_bytes)
    return payload + LINE_TERMINATOR


@dataclass
class LineDecoder:
    """Incremental splitter turning stream chunks into complete messages.

    A line longer than ``max_bytes`` is discarded up to and including its
    terminator; the bytes after it are decoded normally.
    """

    max_bytes: int
    buffer: bytearray = field(default_factory=bytearray)
    discarding: bool = False
    dropped: int = 0

    def feed(self, chunk: bytes) -> List[bytes]:
        self.buffer.extend(chunk)
        messages: List[bytes] = []
        while True:
            index = self.buffer.find(LINE_TERMINATOR)
            if index == -1:
                if len(self.buffer) > self.max_bytes + 1:
                    # keep a possible trailing "\r" so a CRLF split across chunks still counts
                    if not self.discarding:
                        self.discarding = True
                        self.dropped += 1
                    del self.buffer[:-1]
                break
            line = bytes(self.buffer[:index])
            del self.buffer[: index + 1]
            if self.discarding:
                self.discarding = False
                continue
            if line.endswith(b"\r"):
                line = line[:-1]
            if len(line) > self.max_bytes:
                self.dropped += 1
                continue
            messages.append(line)
        return messages

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete message."""

        return 0 if self.discarding else len(self.buffer)

    def reset(self) -> None:
        self.buffer.clear()
        self.discarding = False
