"""Error kinds surfaced at the session boundary."""

from __future__ import annotations

import asyncio
import socket
from typing import Literal

ConnectFailureReason = Literal["resolution", "refused", "timeout", "unreachable"]


class ChatError(RuntimeError):
    """Base class for chat connection errors."""


class ConnectFailed(ChatError):
    """Raised when a connection cannot be established; callers may retry."""

    def __init__(self, reason: ConnectFailureReason, address: tuple[str, int], detail: str = "") -> None:
        host, port = address
        message = f"Connect to {host}:{port} failed ({reason})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.reason = reason
        self.address = address


class NotConnected(ChatError):
    """Raised when sending on a session that is not connected."""


class MessageTooLong(ChatError):
    """Raised when a message exceeds the configured maximum size."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Message of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class InvalidMessage(ChatError, ValueError):
    """Raised when a message cannot be framed as a single line."""


class SessionIOError(ChatError):
    """Raised when the transport fails mid-session; the session is closed."""


def classify_connect_error(exc: BaseException) -> ConnectFailureReason:
    """Map a low-level connect exception onto a ``ConnectFailed`` reason."""

    if isinstance(exc, socket.gaierror):
        return "resolution"
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(exc, ConnectionRefusedError):
        return "refused"
    message = str(exc).lower()
    if any(token in message for token in ("name or service", "nodename", "getaddrinfo", "resolve")):
        return "resolution"
    if "refused" in message:
        return "refused"
    if "timed out" in message or "timeout" in message:
        return "timeout"
    return "unreachable"
