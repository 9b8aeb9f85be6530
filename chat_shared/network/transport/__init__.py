"""Transport implementations for chat sessions."""

from .base import BaseTransport
from .memory import MemoryTransport
from .tcp import TcpTransport, open_tcp_transport

__all__ = ["BaseTransport", "MemoryTransport", "TcpTransport", "open_tcp_transport"]
