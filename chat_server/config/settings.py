"""Server configuration: accept limits and the reply table."""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator

from chat_shared.config import ChatSettings


class ReplyRule(BaseModel):
    """Keywords that select one reply template."""

    keywords: list[str] = Field(min_length=1)
    reply: str

    @field_validator("keywords")
    @classmethod
    def _normalize_keywords(cls, value: list[str]) -> list[str]:
        return [keyword.strip().lower() for keyword in value if keyword.strip()]


def _default_reply_rules() -> list[ReplyRule]:
    return [
        ReplyRule(keywords=["hello", "hi", "hey"], reply="Hello! How can I help you today?"),
        ReplyRule(keywords=["time"], reply="The current time is {time}."),
        ReplyRule(keywords=["date", "day"], reply="Today is {date}."),
        ReplyRule(keywords=["name"], reply="I'm LineChat, a simple keyword bot."),
        ReplyRule(keywords=["help"], reply="Try saying hello, asking for the time or the date, or say bye to leave."),
    ]


class ServerSettings(ChatSettings):
    """Chat settings plus the server-only knobs."""

    max_sessions: int = Field(
        default=0,
        ge=0,
        description="Maximum concurrent sessions (0 means unlimited).",
    )
    reply_rules: list[ReplyRule] = Field(
        default_factory=_default_reply_rules,
        description="Ordered keyword table; the first matching rule wins.",
    )
    fallback_replies: list[str] = Field(
        default_factory=lambda: [
            "I'm not sure I understand. Could you rephrase that?",
            "Interesting! Tell me more.",
            "Sorry, I don't know how to answer that yet.",
            "Hmm, let's talk about something else.",
        ],
        min_length=1,
        description="Generic replies picked at random when no rule matches.",
    )
    farewell_reply: str = Field(
        default="Goodbye! Have a nice day.",
        description="Reply sent before closing a session on the disconnect sentinel.",
    )
    timeout_reply: str = Field(
        default="Sorry, I took too long to think about that.",
        description="Reply sent when reply generation exceeds the handler timeout.",
    )
    error_reply: str = Field(
        default="Sorry, something went wrong while thinking about that.",
        description="Reply sent when the reply engine raises.",
    )
    reply_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Upper bound for one reply generation call.",
    )
    time_format: str = Field(default="%H:%M:%S", description="strftime format for {time}.")
    date_format: str = Field(default="%Y-%m-%d", description="strftime format for {date}.")


@lru_cache()
def get_server_settings() -> ServerSettings:
    """Return memoized server settings."""

    return ServerSettings()
