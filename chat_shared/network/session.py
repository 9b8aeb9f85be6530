"""One chat connection: transport ownership, serialized sends, receive task.

A session moves CONNECTING -> CONNECTED -> DISCONNECTED exactly once. It never
reconnects; callers that want to retry create a new session.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Optional

from chat_shared.config import ChatSettings
from chat_shared.errors import ConnectFailed, NotConnected, SessionIOError, classify_connect_error
from chat_shared.network.receive_loop import MessageHandler, ReceiveLoop, StopReason
from chat_shared.network.session_state import ConnectionState, ConnectionTracker, InvalidTransition
from chat_shared.network.transport.base import BaseTransport
from chat_shared.network.transport.tcp import open_tcp_transport
from chat_shared.protocol.framing import encode_message

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[str, int, ChatSettings], Awaitable[BaseTransport]]


def _new_session_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class Session:
    """Client- or server-side view of one connection."""

    settings: ChatSettings
    on_message: Optional[MessageHandler] = None
    transport_factory: TransportFactory = open_tcp_transport
    session_id: str = field(default_factory=_new_session_id)

    tracker: ConnectionTracker = field(default_factory=ConnectionTracker, init=False, repr=False)
    _transport: Optional[BaseTransport] = field(default=None, init=False, repr=False)
    _receive_loop: Optional[ReceiveLoop] = field(default=None, init=False, repr=False)
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _closing: bool = field(default=False, init=False, repr=False)
    _closed: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _release_task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)

    @classmethod
    def accepted(
        cls,
        transport: BaseTransport,
        settings: ChatSettings,
        *,
        on_message: Optional[MessageHandler] = None,
        session_id: Optional[str] = None,
        start: bool = True,
    ) -> Session:
        """Wrap an already-established transport (server side).

        With ``start=False`` the receive loop is started later through
        :meth:`start_receiving`, once the caller has finished registering the
        session.
        """

        session = cls(settings=settings, on_message=on_message, session_id=session_id or _new_session_id())
        session._attach(transport, start=start)
        return session

    @property
    def state(self) -> ConnectionState:
        return self.tracker.state

    @property
    def connected(self) -> bool:
        return self.tracker.connected

    @property
    def peer(self) -> Optional[str]:
        return self._transport.peer if self._transport else None

    @property
    def stop_reason(self) -> Optional[StopReason]:
        return self._receive_loop.reason if self._receive_loop else None

    @property
    def dispatched(self) -> int:
        """Number of inbound messages handed to ``on_message`` so far."""

        return self._receive_loop.dispatched if self._receive_loop else 0

    async def connect(self, address: Optional[tuple[str, int]] = None) -> None:
        """Open the transport and start the receive loop.

        Raises ``ConnectFailed`` (resolution, refused, timeout or unreachable)
        and leaves the session DISCONNECTED on failure.
        """

        if self.tracker.state is not ConnectionState.CONNECTING:
            raise InvalidTransition(
                f"Session {self.session_id} is {self.tracker.state.value}; create a new session to reconnect"
            )
        host, port = address or self.settings.address
        try:
            transport = await asyncio.wait_for(
                self.transport_factory(host, port, self.settings),
                timeout=self.settings.connect_timeout_seconds,
            )
        except asyncio.CancelledError:
            self.tracker.mark_disconnected()
            raise
        except (OSError, asyncio.TimeoutError) as exc:
            reason = classify_connect_error(exc)
            self.tracker.mark_disconnected()
            LOGGER.warning("Session %s connect to %s:%s failed (%s): %s", self.session_id, host, port, reason, exc)
            raise ConnectFailed(reason, (host, port), str(exc)) from exc

        try:
            self._attach(transport)
        except InvalidTransition:
            await transport.close()
            raise NotConnected(f"Session {self.session_id} was disconnected while connecting") from None
        LOGGER.info("Session %s connected to %s:%s", self.session_id, host, port)

    def _attach(self, transport: BaseTransport, *, start: bool = True) -> None:
        self.tracker.transition(ConnectionState.CONNECTED)
        self._transport = transport
        self._receive_loop = ReceiveLoop(
            session_id=self.session_id,
            transport=transport,
            tracker=self.tracker,
            dispatch=self.on_message,
            handler_timeout=self.settings.handler_timeout_seconds,
            on_stopped=self._on_loop_stopped,
        )
        if start:
            self._receive_loop.start()

    def start_receiving(self) -> None:
        """Start the receive loop of a session created with ``start=False``."""

        if self._receive_loop is None:
            raise NotConnected(f"Session {self.session_id} has no transport")
        if self._receive_loop.task is None and not self._closing:
            self._receive_loop.start()

    async def send(self, message: str | bytes) -> None:
        """Write one message; sends on the same session never interleave."""

        if not self.tracker.connected:
            raise NotConnected(f"Session {self.session_id} is {self.tracker.state.value}")
        frame = encode_message(
            message,
            max_bytes=self.settings.max_message_bytes,
            encoding=self.settings.encoding,
        )
        async with self._send_lock:
            transport = self._transport
            if transport is None or not self.tracker.connected:
                raise NotConnected(f"Session {self.session_id} is {self.tracker.state.value}")
            try:
                await transport.write_message(frame)
            except OSError as exc:
                LOGGER.warning("Session %s send failed: %s", self.session_id, exc)
                failed = exc
            else:
                return
        await self.disconnect()
        raise SessionIOError(f"Session {self.session_id} send failed: {failed}") from failed

    async def disconnect(self) -> None:
        """Close the session; safe to call repeatedly.

        From outside the receive loop this returns only after the loop has
        exited. From inside a message handler the loop stops as soon as that
        handler returns.
        """

        loop = self._receive_loop
        if self._closing:
            if loop is None or not loop.in_loop():
                await self._closed.wait()
            return
        self._closing = True
        self.tracker.mark_disconnected()
        try:
            if loop is not None:
                await loop.stop()
        finally:
            await self._release_transport()
        LOGGER.info("Session %s disconnected", self.session_id)

    def _on_loop_stopped(self, reason: StopReason) -> None:
        # peer close and I/O errors end the session without a disconnect() call
        if reason is StopReason.CANCELLED or self._closing:
            return
        self._closing = True
        self._release_task = asyncio.get_running_loop().create_task(
            self._release_transport(),
            name=f"session-release-{self.session_id}",
        )
        LOGGER.info("Session %s closed (%s)", self.session_id, reason.value)

    async def _release_transport(self) -> None:
        transport = self._transport
        try:
            if transport is not None:
                await transport.close()
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress transport close error", exc_info=True)
        finally:
            self._closed.set()

    async def wait_stopped(self) -> Optional[StopReason]:
        """Wait for the receive loop to end and report why it ended.

        When the session is closing, this also waits until its transport has
        been released.
        """

        loop = self._receive_loop
        if loop is None:
            return None
        reason = await loop.wait()
        if self._closing and not loop.in_loop():
            await self._closed.wait()
        return reason

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()
