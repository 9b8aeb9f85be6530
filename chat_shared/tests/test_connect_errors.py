import asyncio
import socket

import pytest

from chat_shared.errors import ConnectFailed, classify_connect_error


@pytest.mark.parametrize(
    ("exc", "reason"),
    [
        (socket.gaierror(-2, "Name or service not known"), "resolution"),
        (ConnectionRefusedError(111, "Connection refused"), "refused"),
        (asyncio.TimeoutError(), "timeout"),
        (TimeoutError("timed out"), "timeout"),
        (OSError(113, "No route to host"), "unreachable"),
        (OSError("connect call failed: connection refused"), "refused"),
    ],
)
def test_classify_connect_error(exc, reason):
    assert classify_connect_error(exc) == reason


def test_connect_failed_carries_reason_and_address():
    error = ConnectFailed("refused", ("127.0.0.1", 5000), "Connection refused")

    assert error.reason == "refused"
    assert error.address == ("127.0.0.1", 5000)
    assert "127.0.0.1:5000" in str(error)
    assert "refused" in str(error)
