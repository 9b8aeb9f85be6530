"""Registry of live server sessions keyed by session id."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from chat_shared.network.session import Session


class SessionRegistry:
    """Tracks accepted sessions; all mutations are serialized by one lock.

    Once drained the registry refuses new sessions, which lets a shutting
    down server reject connections that were still being accepted.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    async def add(self, session: Session, *, limit: int = 0) -> bool:
        """Register ``session``; ``False`` when closed or ``limit`` is reached."""

        async with self._lock:
            if self._closed:
                return False
            if limit and len(self._sessions) >= limit:
                return False
            if session.session_id in self._sessions:
                raise KeyError(f"Session {session.session_id} already registered")
            self._sessions[session.session_id] = session
            return True

    async def remove(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            return self._sessions.pop(session_id, None)

    async def drain(self) -> List[Session]:
        """Close the registry and return every session it held."""

        async with self._lock:
            self._closed = True
            sessions = list(self._sessions.values())
            self._sessions.clear()
            return sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def snapshot(self) -> List[Session]:
        return list(self._sessions.values())

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._sessions)