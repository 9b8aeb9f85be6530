"""Keyword-reply chat server built on the shared session core."""
