"""Network stack (transport/session/receive loop) shared by client and server."""

from chat_shared.network.receive_loop import MessageHandler, ReceiveLoop, StopReason
from chat_shared.network.session import Session, TransportFactory
from chat_shared.network.session_state import ConnectionState, ConnectionTracker, InvalidTransition
from chat_shared.network.transport.base import BaseTransport
from chat_shared.network.transport.memory import MemoryTransport
from chat_shared.network.transport.tcp import TcpTransport, open_tcp_transport

__all__ = [
    "BaseTransport",
    "ConnectionState",
    "ConnectionTracker",
    "InvalidTransition",
    "MemoryTransport",
    "MessageHandler",
    "ReceiveLoop",
    "Session",
    "StopReason",
    "TcpTransport",
    "TransportFactory",
    "open_tcp_transport",
]
