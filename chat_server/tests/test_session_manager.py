import asyncio
import random
from datetime import datetime

import pytest

from chat_server.config import ServerSettings
from chat_server.network import SessionManager
from chat_server.replies import KeywordReplyEngine
from chat_shared.errors import ConnectFailed
from chat_shared.network import ConnectionState, Session, StopReason


async def _wait_for(predicate, *, timeout: float = 2.0, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


async def _start_manager(**overrides):
    settings = ServerSettings(host="127.0.0.1", port=0, **overrides)
    engine = KeywordReplyEngine.from_settings(
        settings,
        clock=lambda: datetime(2024, 1, 2, 3, 4, 5),
        rng=random.Random(7),
    )
    manager = SessionManager(settings, engine=engine)
    address = await manager.start()
    return manager, settings, address


async def _connect(settings, address):
    inbox: asyncio.Queue = asyncio.Queue()
    session = Session(settings, on_message=lambda sid, msg: inbox.put_nowait(msg.decode()))
    await session.connect(address)
    return session, inbox


async def _ask(session, inbox, text: str) -> str:
    await session.send(text)
    return await asyncio.wait_for(inbox.get(), timeout=2)


@pytest.mark.asyncio
async def test_server_replies_to_each_message():
    manager, settings, address = await _start_manager()
    session, inbox = await _connect(settings, address)
    try:
        assert await _ask(session, inbox, "hello") == "Hello! How can I help you today?"
        assert await _ask(session, inbox, "what time is it") == "The current time is 03:04:05."
        assert await _ask(session, inbox, "qwertyuiop") in settings.fallback_replies
    finally:
        await session.disconnect()
        await manager.stop()


@pytest.mark.asyncio
async def test_sessions_are_independent():
    manager, settings, address = await _start_manager()
    first, first_inbox = await _connect(settings, address)
    second, second_inbox = await _connect(settings, address)
    try:
        assert await _wait_for(lambda: len(manager) == 2)
        server_ids = [session.session_id for session in manager.sessions()]
        assert len(set(server_ids)) == 2
        assert all(manager.get(session_id) is not None for session_id in server_ids)

        await first.disconnect()
        assert await _wait_for(lambda: len(manager) == 1)

        assert await _ask(second, second_inbox, "hi") == "Hello! How can I help you today?"
        assert first_inbox.empty()
    finally:
        await second.disconnect()
        await manager.stop()


@pytest.mark.asyncio
async def test_bye_gets_farewell_then_server_closes():
    manager, settings, address = await _start_manager()
    session, inbox = await _connect(settings, address)
    try:
        assert await _ask(session, inbox, "bye") == "Goodbye! Have a nice day."
        assert await asyncio.wait_for(session.wait_stopped(), timeout=2) is StopReason.PEER_CLOSED
        assert session.state is ConnectionState.DISCONNECTED
        assert await _wait_for(lambda: len(manager) == 0)
    finally:
        await session.disconnect()
        await manager.stop()


@pytest.mark.asyncio
async def test_stop_disconnects_every_session():
    manager, settings, address = await _start_manager()
    clients = [await _connect(settings, address) for _ in range(3)]
    assert await _wait_for(lambda: len(manager) == 3)

    await manager.stop()

    assert len(manager) == 0
    assert manager.registry.closed
    assert not manager.running
    for session, _inbox in clients:
        reason = await asyncio.wait_for(session.wait_stopped(), timeout=2)
        assert reason in {StopReason.PEER_CLOSED, StopReason.ERROR}
        await session.disconnect()

    late = Session(settings)
    with pytest.raises(ConnectFailed):
        await late.connect(address)


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    manager, _settings, _address = await _start_manager()

    await asyncio.gather(manager.stop(), manager.stop())
    await manager.stop()

    assert not manager.running


@pytest.mark.asyncio
async def test_session_limit_rejects_extra_connections():
    manager, settings, address = await _start_manager(max_sessions=1)
    first, first_inbox = await _connect(settings, address)
    try:
        assert await _wait_for(lambda: len(manager) == 1)

        second, _ = await _connect(settings, address)
        assert await asyncio.wait_for(second.wait_stopped(), timeout=2) is StopReason.PEER_CLOSED
        await second.disconnect()

        assert len(manager) == 1
        assert await _ask(first, first_inbox, "hello") == "Hello! How can I help you today?"
    finally:
        await first.disconnect()
        await manager.stop()


@pytest.mark.asyncio
async def test_start_twice_is_rejected():
    manager, _settings, _address = await _start_manager()
    try:
        with pytest.raises(RuntimeError):
            await manager.start()
    finally:
        await manager.stop()


@pytest.mark.asyncio
async def test_serve_forever_stops_on_cancel():
    settings = ServerSettings(host="127.0.0.1", port=0)
    manager = SessionManager(settings)
    task = asyncio.create_task(manager.serve_forever())
    assert await _wait_for(lambda: manager.address is not None)

    session, inbox = await _connect(settings, manager.address)
    assert await _ask(session, inbox, "hello") == "Hello! How can I help you today?"

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(manager) == 0
    assert await asyncio.wait_for(session.wait_stopped(), timeout=2) in {StopReason.PEER_CLOSED, StopReason.ERROR}
    await session.disconnect()
