"""Reply generation strategies and the session handler that uses them."""

from .engine import KeywordReplyEngine, ReplyEngine
from .responder import ReplyResponder

__all__ = ["KeywordReplyEngine", "ReplyEngine", "ReplyResponder"]
