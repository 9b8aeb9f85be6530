"""Conversation-level conventions layered on top of framing."""

from __future__ import annotations


def is_disconnect_request(text: str, sentinel: str) -> bool:
    """True when ``text`` is the sentinel asking the peer to end the session."""

    return bool(sentinel) and text.strip().lower() == sentinel.strip().lower()
