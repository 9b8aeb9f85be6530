import pytest

from chat_client.console import run_console
from chat_server.config import ServerSettings
from chat_server.network import SessionManager
from chat_shared.config import ChatSettings


def _scripted(lines):
    remaining = iter(lines)

    def _read_line(prompt: str):
        return next(remaining, None)

    return _read_line


@pytest.mark.asyncio
async def test_console_chats_until_bye():
    manager = SessionManager(ServerSettings(host="127.0.0.1", port=0))
    host, port = await manager.start()
    rendered = []
    try:
        code = await run_console(
            ChatSettings(host=host, port=port),
            retry=False,
            read_line=_scripted(["hello", "   ", "bye", "never sent"]),
            render=rendered.append,
        )
    finally:
        await manager.stop()

    assert code == 0
    assert rendered == ["Hello! How can I help you today?", "Goodbye! Have a nice day."]


@pytest.mark.asyncio
async def test_console_stops_on_end_of_input(capsys):
    manager = SessionManager(ServerSettings(host="127.0.0.1", port=0))
    host, port = await manager.start()
    try:
        code = await run_console(ChatSettings(host=host, port=port), retry=False, read_line=_scripted([]))
    finally:
        await manager.stop()

    assert code == 0
    assert "Closing connection." in capsys.readouterr().out


@pytest.mark.asyncio
async def test_console_reports_connect_failure(capsys):
    manager = SessionManager(ServerSettings(host="127.0.0.1", port=0))
    host, port = await manager.start()
    await manager.stop()

    code = await run_console(ChatSettings(host=host, port=port), retry=False, read_line=_scripted(["hello"]))

    assert code == 1
    assert "Could not connect" in capsys.readouterr().out
