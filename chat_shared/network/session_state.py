"""Connection state tracking shared by a session and its receive loop."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone


class ConnectionState(enum.Enum):
    """Liveness of one session; DISCONNECTED is terminal."""

    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class InvalidTransition(ValueError):
    """Raised when a state change would break the connection lifecycle."""


_ALLOWED: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.DISCONNECTED: frozenset(),
}


@dataclass
class ConnectionTracker:
    """Lock-guarded tri-state value.

    Every read and every check-then-write goes through one lock, so the
    session owner, its receive task and any foreign thread (a UI thread, for
    instance) observe transitions atomically.
    """

    _state: ConnectionState = ConnectionState.CONNECTING
    last_transition_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def disconnected(self) -> bool:
        return self.state is ConnectionState.DISCONNECTED

    def transition(self, next_state: ConnectionState) -> ConnectionState:
        """Move into ``next_state`` and return the previous state."""

        with self._lock:
            current = self._state
            if next_state not in _ALLOWED[current]:
                raise InvalidTransition(f"Invalid transition {current.value} → {next_state.value}")
            self._state = next_state
            self.last_transition_at = datetime.now(tz=timezone.utc)
            return current

    def try_transition(self, next_state: ConnectionState) -> bool:
        """Like :meth:`transition` but returns ``False`` instead of raising."""

        try:
            self.transition(next_state)
        except InvalidTransition:
            return False
        return True

    def mark_disconnected(self) -> bool:
        """Enter DISCONNECTED; ``True`` only for the caller that performed the change."""

        return self.try_transition(ConnectionState.DISCONNECTED)
