"""Transport abstractions for chat sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class BaseTransport(ABC):
    """Bidirectional message stream owned by exactly one session."""

    @property
    @abstractmethod
    def peer(self) -> Optional[str]:
        ...

    @abstractmethod
    async def read_message(self) -> Optional[bytes]:
        """Return the next complete message, or ``None`` once the peer has closed."""

    @abstractmethod
    async def write_message(self, frame: bytes) -> None:
        """Write one already framed message and wait for the buffer to drain."""

    @abstractmethod
    async def close(self) -> None:
        ...
