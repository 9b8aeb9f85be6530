"""Client-side facade over one chat session."""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Optional

from chat_shared.config import ChatSettings
from chat_shared.errors import ConnectFailed, NotConnected
from chat_shared.network.receive_loop import MessageHandler, StopReason
from chat_shared.network.session import Session, TransportFactory
from chat_shared.network.transport.tcp import open_tcp_transport

LOGGER = logging.getLogger(__name__)

Renderer = Callable[[str], Awaitable[None] | None]


async def connect_with_retry(
    settings: ChatSettings,
    *,
    on_message: Optional[MessageHandler] = None,
    address: Optional[tuple[str, int]] = None,
    transport_factory: TransportFactory = open_tcp_transport,
    attempts: Optional[int] = None,
    fatal_reasons: Iterable[str] = ("resolution",),
) -> Session:
    """Connect a fresh session, retrying refused/timed out attempts with backoff.

    Each attempt uses a new ``Session`` because a failed session stays
    DISCONNECTED. The last ``ConnectFailed`` is raised once attempts run out
    or on a failure whose reason is listed in ``fatal_reasons``.
    """

    max_attempts = int(attempts or settings.reconnect_max_attempts)
    base_delay = float(settings.reconnect_base_delay_seconds)
    max_delay = float(settings.reconnect_max_delay_seconds)
    jitter = float(settings.reconnect_jitter)
    fatal = set(fatal_reasons)
    attempt = 0
    while True:
        attempt += 1
        session = Session(settings=settings, on_message=on_message, transport_factory=transport_factory)
        try:
            await session.connect(address)
        except ConnectFailed as exc:
            if exc.reason in fatal or attempt >= max_attempts:
                raise
            delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
            jitter_factor = random.uniform(1 - jitter, 1 + jitter)
            sleep_for = max(0.0, delay * jitter_factor)
            LOGGER.warning(
                "Connect failed (attempt %s/%s): %s; retrying in %.2fs",
                attempt,
                max_attempts,
                exc,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
            continue
        if attempt > 1:
            LOGGER.info("Connected after %s attempt(s)", attempt)
        return session


def marshal_to_loop(
    loop: asyncio.AbstractEventLoop,
    handler: Callable[[str, bytes], object],
) -> MessageHandler:
    """Wrap ``handler`` so it runs on ``loop`` instead of the receive task.

    Useful when presentation state lives on another thread's event loop.
    """

    def _dispatch(session_id: str, message: bytes) -> None:
        loop.call_soon_threadsafe(handler, session_id, message)

    return _dispatch


@dataclass
class ChatClient:
    """Owns one session at a time and renders every inbound message."""

    settings: ChatSettings
    render: Renderer
    transport_factory: TransportFactory = open_tcp_transport

    session: Optional[Session] = field(default=None, init=False, repr=False)

    @property
    def connected(self) -> bool:
        return self.session is not None and self.session.connected

    async def connect(self, address: Optional[tuple[str, int]] = None, *, retry: bool = False) -> Session:
        """Connect a new session unless one is already live."""

        if self.session is not None and self.session.connected:
            return self.session
        if retry:
            session = await connect_with_retry(
                self.settings,
                on_message=self._on_message,
                address=address,
                transport_factory=self.transport_factory,
            )
        else:
            session = Session(
                settings=self.settings,
                on_message=self._on_message,
                transport_factory=self.transport_factory,
            )
            await session.connect(address)
        self.session = session
        return session

    async def say(self, text: str) -> None:
        if self.session is None:
            raise NotConnected("Client has no session")
        await self.session.send(text)

    async def wait_closed(self, timeout: Optional[float] = None) -> Optional[StopReason]:
        """Wait until the server ends the session; ``None`` on timeout."""

        if self.session is None:
            return None
        try:
            return await asyncio.wait_for(self.session.wait_stopped(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def close(self) -> None:
        if self.session is not None:
            await self.session.disconnect()

    async def _on_message(self, session_id: str, message: bytes) -> None:
        text = message.decode(self.settings.encoding, errors="replace")
        result = self.render(text)
        if inspect.isawaitable(result):
            await result
