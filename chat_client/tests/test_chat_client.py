import asyncio
import threading

import pytest

from chat_client import ChatClient, connect_with_retry, marshal_to_loop
from chat_shared.config import ChatSettings
from chat_shared.errors import ConnectFailed, NotConnected
from chat_shared.network import ConnectionState, MemoryTransport, StopReason


def _settings(**overrides) -> ChatSettings:
    options = {
        "reconnect_base_delay_seconds": 0.01,
        "reconnect_max_delay_seconds": 0.02,
        "reconnect_jitter": 0.0,
        "reconnect_max_attempts": 3,
        "connect_timeout_seconds": 1.0,
    }
    options.update(overrides)
    return ChatSettings(**options)


class _FlakyFactory:
    """Refuses the first ``failures`` attempts, then hands out ``transport``."""

    def __init__(self, transport, failures: int, exc: Exception | None = None) -> None:
        self.transport = transport
        self.failures = failures
        self.exc = exc or ConnectionRefusedError(111, "Connection refused")
        self.calls = 0

    async def __call__(self, host, port, settings):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.transport


@pytest.mark.asyncio
async def test_client_renders_inbound_messages():
    left, right = MemoryTransport.pair()
    rendered = []
    client = ChatClient(settings=_settings(), render=rendered.append, transport_factory=_FlakyFactory(left, 0))

    await client.connect()
    await right.write_message(b"Bot says hi\n")
    await asyncio.wait_for(_until(lambda: rendered == ["Bot says hi"]), timeout=1)

    await client.say("hello")
    assert await asyncio.wait_for(right.read_message(), timeout=1) == b"hello"
    await client.close()
    assert not client.connected


async def _until(predicate) -> None:
    while not predicate():
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_async_renderer_is_awaited():
    left, right = MemoryTransport.pair()
    rendered = []

    async def render(text: str) -> None:
        await asyncio.sleep(0)
        rendered.append(text.upper())

    client = ChatClient(settings=_settings(), render=render, transport_factory=_FlakyFactory(left, 0))
    await client.connect()
    await right.write_message(b"quiet\n")

    await asyncio.wait_for(_until(lambda: rendered == ["QUIET"]), timeout=1)
    await client.close()


@pytest.mark.asyncio
async def test_say_without_session_raises():
    client = ChatClient(settings=_settings(), render=print)

    with pytest.raises(NotConnected):
        await client.say("hello")
    assert await client.wait_closed(timeout=0.01) is None


@pytest.mark.asyncio
async def test_wait_closed_reports_peer_close():
    left, right = MemoryTransport.pair()
    client = ChatClient(settings=_settings(), render=print, transport_factory=_FlakyFactory(left, 0))
    await client.connect()

    assert await client.wait_closed(timeout=0.02) is None
    await right.close()

    assert await client.wait_closed(timeout=1) is StopReason.PEER_CLOSED
    assert client.session.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_with_retry_recovers_after_refusals():
    left, _right = MemoryTransport.pair()
    factory = _FlakyFactory(left, failures=2)

    session = await connect_with_retry(_settings(), transport_factory=factory)

    assert session.connected
    assert factory.calls == 3
    await session.disconnect()


@pytest.mark.asyncio
async def test_connect_with_retry_gives_up_after_max_attempts():
    factory = _FlakyFactory(None, failures=10)

    with pytest.raises(ConnectFailed) as excinfo:
        await connect_with_retry(_settings(), transport_factory=factory)

    assert excinfo.value.reason == "refused"
    assert factory.calls == 3


@pytest.mark.asyncio
async def test_resolution_failures_are_not_retried():
    import socket

    factory = _FlakyFactory(None, failures=10, exc=socket.gaierror(-2, "Name or service not known"))

    with pytest.raises(ConnectFailed) as excinfo:
        await connect_with_retry(_settings(), transport_factory=factory)

    assert excinfo.value.reason == "resolution"
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_client_connect_uses_retry_when_asked():
    left, _right = MemoryTransport.pair()
    factory = _FlakyFactory(left, failures=1)
    client = ChatClient(settings=_settings(), render=print, transport_factory=factory)

    session = await client.connect(retry=True)

    assert session is client.session
    assert client.connected
    assert await client.connect() is session
    await client.close()


@pytest.mark.asyncio
async def test_marshal_to_loop_runs_handler_on_target_loop():
    loop = asyncio.get_running_loop()
    loop_thread = threading.get_ident()
    seen = []
    done = asyncio.Event()

    def handler(session_id: str, message: bytes) -> None:
        seen.append((session_id, message, threading.get_ident()))
        done.set()

    dispatch = marshal_to_loop(loop, handler)
    await asyncio.to_thread(dispatch, "s-1", b"hello")
    await asyncio.wait_for(done.wait(), timeout=1)

    assert seen == [("s-1", b"hello", loop_thread)]
