"""Chat configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE_ENV = "LINECHAT_CONFIG_FILE"
DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/linechat/chat.yaml"),
    Path("/etc/linechat/chat.yml"),
    Path("./config/chat.yaml"),
    Path("./config/chat.yml"),
)


def _resolve_candidate_paths() -> Iterable[Path]:
    explicit = os.getenv(CONFIG_FILE_ENV)
    if explicit:
        yield Path(explicit).expanduser()
    yield from DEFAULT_CONFIG_LOCATIONS


def load_config_file(path: Path) -> Dict[str, Any] | None:
    """Parse a YAML or JSON config file; ``None`` when absent or unsupported."""

    if not path.is_file():
        return None
    suffix = path.suffix.lower()
    try:
        with path.open("r", encoding="utf-8") as handle:
            if suffix in {".yaml", ".yml"}:
                raw = yaml.safe_load(handle)
            elif suffix == ".json":
                raw = json.load(handle)
            else:
                return None
    except OSError as exc:
        raise RuntimeError(f"Failed to read chat config file {path}") from exc
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid chat config file {path}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Chat config file {path} must contain a mapping at top level.")
    return raw


def config_file_source(settings_cls: type[BaseSettings] | None = None) -> Dict[str, Any]:
    """Settings source returning the first config file found on disk."""

    for path in _resolve_candidate_paths():
        data = load_config_file(path)
        if data is not None:
            data.setdefault("config_path", path)
            return data
    return {}


class ChatSettings(BaseSettings):
    """Validated settings for both ends of a chat connection."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="LINECHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Address
    host: str = Field(
        default="127.0.0.1",
        description="Server host the client connects to and the server binds.",
    )
    port: int = Field(
        default=5000,
        ge=0,
        le=65535,
        description="Server TCP port (0 lets the server pick a free port).",
    )

    # Framing
    max_message_bytes: PositiveInt = Field(
        default=2048,
        description="Upper bound for one message payload, excluding the line terminator.",
    )
    read_chunk_bytes: PositiveInt = Field(
        default=4096,
        description="Bytes requested from the socket per read.",
    )
    encoding: str = Field(
        default="utf-8",
        description="Text encoding used for str messages.",
    )

    # Timeouts
    connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound for establishing a TCP connection.",
    )
    handler_timeout_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound for one async message handler call (0 disables).",
    )

    # Protocol conventions
    disconnect_sentinel: str = Field(
        default="bye",
        description="Message text that asks the peer to end the session.",
    )

    # Caller-side retry policy
    reconnect_base_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base delay for connect retry backoff.",
    )
    reconnect_max_delay_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Maximum delay for connect retry backoff.",
    )
    reconnect_jitter: float = Field(
        default=0.2,
        ge=0,
        le=1,
        description="Jitter factor applied to connect retry backoff (0.0-1.0).",
    )
    reconnect_max_attempts: PositiveInt = Field(
        default=5,
        description="Connect attempts before giving up.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            config_file_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port


@lru_cache()
def get_settings() -> ChatSettings:
    """Return memoized chat settings."""

    return ChatSettings()
