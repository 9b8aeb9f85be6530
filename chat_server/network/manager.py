"""TCP accept loop running one independent session per connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from chat_server.config.settings import ServerSettings
from chat_server.network.registry import SessionRegistry
from chat_server.replies.engine import KeywordReplyEngine, ReplyEngine
from chat_server.replies.responder import ReplyResponder
from chat_shared.network.receive_loop import MessageHandler
from chat_shared.network.session import Session
from chat_shared.network.transport.tcp import TcpTransport

LOGGER = logging.getLogger(__name__)


class SessionManager:
    """Accepts chat clients and owns the registry of their sessions."""

    def __init__(
        self,
        settings: ServerSettings,
        *,
        engine: Optional[ReplyEngine] = None,
        on_message: Optional[MessageHandler] = None,
        registry: Optional[SessionRegistry] = None,
    ) -> None:
        self._settings = settings
        self._registry = registry or SessionRegistry()
        if on_message is None:
            on_message = ReplyResponder(
                engine=engine or KeywordReplyEngine.from_settings(settings),
                settings=settings,
                lookup=self._registry.get,
            )
        self._on_message = on_message
        self._server: Optional[asyncio.AbstractServer] = None
        self._address: Optional[tuple[str, int]] = None
        self._connection_tasks: Set[asyncio.Task] = set()
        self._stopping = False
        self._stopped = asyncio.Event()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def address(self) -> Optional[tuple[str, int]]:
        """Bound (host, port) once started."""

        return self._address

    @property
    def running(self) -> bool:
        return self._server is not None and not self._stopping

    def get(self, session_id: str) -> Optional[Session]:
        return self._registry.get(session_id)

    def sessions(self) -> list[Session]:
        return self._registry.snapshot()

    def __len__(self) -> int:
        return len(self._registry)

    async def start(self, host: Optional[str] = None, port: Optional[int] = None) -> tuple[str, int]:
        """Bind the listening socket and begin accepting connections."""

        if self._server is not None:
            raise RuntimeError("Session manager already started")
        bind_host = host or self._settings.host
        bind_port = self._settings.port if port is None else port
        self._server = await asyncio.start_server(self._handle_connection, bind_host, bind_port)
        sockname = self._server.sockets[0].getsockname()
        self._address = (sockname[0], sockname[1])
        LOGGER.info("Chat server listening on %s:%s", *self._address)
        return self._address

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connection_tasks.add(task)
        try:
            await self._run_session(TcpTransport.from_streams(reader, writer, self._settings))
        finally:
            if task is not None:
                self._connection_tasks.discard(task)

    async def _run_session(self, transport: TcpTransport) -> None:
        session = Session.accepted(transport, self._settings, on_message=self._on_message, start=False)
        if self._stopping or not await self._registry.add(session, limit=self._settings.max_sessions):
            if self._stopping or self._registry.closed:
                LOGGER.info("Rejecting connection from %s: server is shutting down", transport.peer)
            else:
                LOGGER.warning(
                    "Rejecting connection from %s: session limit %s reached",
                    transport.peer,
                    self._settings.max_sessions,
                )
            await session.disconnect()
            return

        LOGGER.info("Session %s accepted from %s", session.session_id, transport.peer)
        try:
            session.start_receiving()
            reason = await session.wait_stopped()
            LOGGER.info("Session %s ended (%s)", session.session_id, reason.value if reason else "not started")
        except Exception:  # noqa: BLE001
            LOGGER.exception("Session %s crashed", session.session_id)
        finally:
            await session.disconnect()
            await self._registry.remove(session.session_id)

    async def stop(self) -> None:
        """Disconnect every session, drain the registry, then stop accepting."""

        if self._stopping:
            await self._stopped.wait()
            return
        self._stopping = True
        try:
            sessions = await self._registry.drain()
            if sessions:
                LOGGER.info("Disconnecting %s session(s)", len(sessions))
                results = await asyncio.gather(*(session.disconnect() for session in sessions), return_exceptions=True)
                for session, result in zip(sessions, results):
                    if isinstance(result, Exception):
                        LOGGER.warning("Session %s did not disconnect cleanly: %s", session.session_id, result)
            current = asyncio.current_task()
            pending = [task for task in self._connection_tasks if task is not current]
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            server = self._server
            if server is not None:
                server.close()
                await server.wait_closed()
            LOGGER.info("Chat server stopped")
        finally:
            self._stopped.set()

    async def serve_forever(self) -> None:
        """Run until cancelled, then shut down cleanly."""

        if self._server is None:
            await self.start()
        try:
            await asyncio.Future()  # block until cancelled
        except asyncio.CancelledError:
            LOGGER.info("Chat server shutdown requested")
            raise
        finally:
            await self.stop()
