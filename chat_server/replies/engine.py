"""Reply strategies mapping one inbound message to one reply string."""

from __future__ import annotations

import random
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from chat_server.config.settings import ReplyRule, ServerSettings
from chat_shared.protocol.conventions import is_disconnect_request

_WORD_RE = re.compile(r"[a-z0-9']+")


class ReplyEngine(ABC):
    """Strategy invoked once per received message.

    Implementations may be called concurrently from several sessions and
    must not keep per-call state between invocations.
    """

    @abstractmethod
    def generate_reply(self, text: str) -> str:
        ...


@dataclass
class KeywordReplyEngine(ReplyEngine):
    """First-match keyword table with a random fallback."""

    rules: Sequence[ReplyRule]
    fallback_replies: Sequence[str]
    farewell_reply: str = "Goodbye!"
    disconnect_sentinel: str = "bye"
    time_format: str = "%H:%M:%S"
    date_format: str = "%Y-%m-%d"
    clock: Callable[[], datetime] = datetime.now
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if not self.fallback_replies:
            raise ValueError("KeywordReplyEngine needs at least one fallback reply")

    @classmethod
    def from_settings(cls, settings: ServerSettings, **overrides) -> KeywordReplyEngine:
        options = {
            "rules": list(settings.reply_rules),
            "fallback_replies": list(settings.fallback_replies),
            "farewell_reply": settings.farewell_reply,
            "disconnect_sentinel": settings.disconnect_sentinel,
            "time_format": settings.time_format,
            "date_format": settings.date_format,
        }
        options.update(overrides)
        return cls(**options)

    def generate_reply(self, text: str) -> str:
        if is_disconnect_request(text, self.disconnect_sentinel):
            return self.farewell_reply
        words = _WORD_RE.findall(text.lower())
        for rule in self.rules:
            if any(self._matches(keyword, words) for keyword in rule.keywords):
                return self._render(rule.reply)
        return self.rng.choice(list(self.fallback_replies))

    @staticmethod
    def _matches(keyword: str, words: list[str]) -> bool:
        if " " not in keyword:
            return keyword in words
        # multi-word keywords match on word boundaries
        return f" {keyword} " in f" {' '.join(words)} "

    def _render(self, template: str) -> str:
        # only the known placeholders are substituted; other braces stay literal
        now = self.clock()
        rendered = template.replace("{time}", now.strftime(self.time_format))
        return rendered.replace("{date}", now.strftime(self.date_format))
