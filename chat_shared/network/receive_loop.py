"""Per-session task that reads messages and hands them to a handler."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from chat_shared.network.session_state import ConnectionTracker
from chat_shared.network.transport.base import BaseTransport

LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Awaitable[None] | None]

# Set inside a loop task; tasks spawned by its handlers inherit the value.
_ACTIVE_LOOP: contextvars.ContextVar[Optional["ReceiveLoop"]] = contextvars.ContextVar(
    "chat_receive_loop", default=None
)


class StopReason(enum.Enum):
    PEER_CLOSED = "peer_closed"
    CANCELLED = "cancelled"
    ERROR = "error"


class ReceiveLoop:
    """Reads complete messages until the peer closes, an error occurs or stop() is called.

    Messages are dispatched one at a time, in arrival order, and the next
    read only starts once the handler has returned. Peer close and I/O
    errors move the tracker to DISCONNECTED; a requested stop leaves it to
    the caller that asked for it.
    """

    def __init__(
        self,
        *,
        session_id: str,
        transport: BaseTransport,
        tracker: ConnectionTracker,
        dispatch: Optional[MessageHandler] = None,
        handler_timeout: float = 0,
        on_stopped: Optional[Callable[[StopReason], None]] = None,
    ) -> None:
        self._session_id = session_id
        self._transport = transport
        self._tracker = tracker
        self._dispatch = dispatch
        self._handler_timeout = float(handler_timeout or 0)
        self._on_stopped = on_stopped
        self._stop_requested = False
        self._task: Optional[asyncio.Task[StopReason]] = None
        self._reason: Optional[StopReason] = None
        self._dispatching = False
        self.dispatched = 0

    @property
    def task(self) -> Optional[asyncio.Task[StopReason]]:
        return self._task

    @property
    def reason(self) -> Optional[StopReason]:
        return self._reason

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[StopReason]:
        if self._task is not None:
            raise RuntimeError(f"Receive loop for session {self._session_id} already started")
        self._task = asyncio.create_task(self._run(), name=f"session-receive-{self._session_id}")
        return self._task

    def request_stop(self) -> None:
        """Ask the loop to stop before its next read or dispatch."""

        self._stop_requested = True

    def in_loop(self) -> bool:
        """True when called from a handler that this loop is currently running.

        Tasks spawned by a handler inherit the context; they only count as
        in-loop while a dispatch is still in flight.
        """

        return self._dispatching and _ACTIVE_LOOP.get() is self

    async def stop(self) -> None:
        """Stop the loop and wait until it has fully exited."""

        self.request_stop()
        task = self._task
        if task is None or task.done():
            return
        if self.in_loop():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def wait(self) -> Optional[StopReason]:
        task = self._task
        if task is None:
            return self._reason
        await asyncio.wait({task})
        return self._reason

    async def _run(self) -> StopReason:
        _ACTIVE_LOOP.set(self)
        try:
            while not self._stop_requested:
                message = await self._transport.read_message()
                if message is None:
                    self._tracker.mark_disconnected()
                    LOGGER.info("Session %s closed by peer", self._session_id)
                    return self._finish(StopReason.PEER_CLOSED)
                if self._stop_requested:
                    break
                await self._deliver(message)
        except asyncio.CancelledError:
            self._finish(StopReason.CANCELLED)
            LOGGER.info("Session %s receive loop cancelled", self._session_id)
            raise
        except (OSError, asyncio.IncompleteReadError) as exc:
            self._tracker.mark_disconnected()
            LOGGER.warning("Session %s receive error: %s", self._session_id, exc)
            return self._finish(StopReason.ERROR)
        LOGGER.info("Session %s receive loop stopped", self._session_id)
        return self._finish(StopReason.CANCELLED)

    async def _deliver(self, message: bytes) -> None:
        if self._dispatch is None:
            LOGGER.debug("Session %s has no handler; dropping %r", self._session_id, message)
            return
        self.dispatched += 1
        self._dispatching = True
        try:
            result = self._dispatch(self._session_id, message)
            if inspect.isawaitable(result):
                if self._handler_timeout > 0:
                    await asyncio.wait_for(result, timeout=self._handler_timeout)
                else:
                    await result
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Handler for session %s exceeded %.2fs; continuing",
                self._session_id,
                self._handler_timeout,
            )
        except Exception:  # noqa: BLE001
            LOGGER.exception("Handler failed for session %s", self._session_id)
        finally:
            self._dispatching = False

    def _finish(self, reason: StopReason) -> StopReason:
        if self._reason is None:
            self._reason = reason
            if self._on_stopped:
                try:
                    self._on_stopped(reason)
                except Exception:  # noqa: BLE001
                    LOGGER.debug("Suppress receive loop stop callback error", exc_info=True)
        return self._reason
