"""Interactive console front end for the chat client."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

from chat_client.client import ChatClient, Renderer
from chat_shared.config import ChatSettings, get_settings
from chat_shared.errors import ChatError, ConnectFailed, MessageTooLong, NotConnected
from chat_shared.protocol.conventions import is_disconnect_request

LOGGER = logging.getLogger(__name__)


def _read_line(prompt: str) -> Optional[str]:
    try:
        return input(prompt)
    except EOFError:
        return None


def print_reply(text: str) -> None:
    print(f"Bot: {text}", flush=True)


async def run_console(
    settings: Optional[ChatSettings] = None,
    *,
    retry: bool = True,
    prompt: str = "You: ",
    read_line: Callable[[str], Optional[str]] = _read_line,
    render: Renderer = print_reply,
) -> int:
    """Chat with the server from stdin until the sentinel, EOF or a server close.

    Returns a process exit code.
    """

    settings = settings or get_settings()
    client = ChatClient(settings=settings, render=render)
    print("Connecting to chat server...", flush=True)
    try:
        await client.connect(retry=retry)
    except ConnectFailed as exc:
        print(f"Could not connect: {exc}", flush=True)
        return 1
    print(f"Connected. Type '{settings.disconnect_sentinel}' to exit.\n", flush=True)

    try:
        while client.connected:
            line = await asyncio.to_thread(read_line, prompt)
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            try:
                await client.say(text)
            except MessageTooLong as exc:
                print(f"Message too long ({exc.size} bytes, limit {exc.limit}).", flush=True)
                continue
            except NotConnected:
                print("Connection closed by server.", flush=True)
                break
            except ChatError as exc:
                print(f"Connection lost: {exc}", flush=True)
                break
            if is_disconnect_request(text, settings.disconnect_sentinel):
                if await client.wait_closed(timeout=settings.connect_timeout_seconds) is None:
                    LOGGER.info("Server kept the session open after %r; closing locally", text)
                break
    finally:
        await client.close()
    print("Closing connection.", flush=True)
    return 0
