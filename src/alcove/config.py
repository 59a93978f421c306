"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_PROXY_URL = "http://127.0.0.1:8377"


@dataclass
class AIConfig:
    base_url: str = DEFAULT_PROXY_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    max_tokens: int = 8192
    stream: bool = True
    system_prompt: str = ""
    api_version: str = "2023-06-01"
    verify_ssl: bool = True
    request_timeout: int = 120  # seconds; per-chunk read timeout
    connect_timeout: int = 5
    write_timeout: int = 30
    pool_timeout: int = 10


@dataclass
class ToolsConfig:
    working_dir: str = field(default_factory=os.getcwd)
    bash_timeout: int = 120  # default and hard cap, seconds
    max_output_chars: int = 30_000


@dataclass
class ChatConfig:
    max_turns: int = 20


@dataclass
class AppSettings:
    host: str = "127.0.0.1"
    port: int = 8378
    data_dir: Path = field(default_factory=lambda: Path.home() / ".alcove")

    @property
    def conversations_dir(self) -> Path:
        return self.data_dir / "conversations"


@dataclass
class AppConfig:
    ai: AIConfig = field(default_factory=AIConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    app: AppSettings = field(default_factory=AppSettings)


def _get_config_path(data_dir: Path | None = None) -> Path:
    if data_dir:
        return data_dir / "config.yaml"
    return Path.home() / ".alcove" / "config.yaml"


def _as_bool(value: Any) -> bool:
    return str(value).lower() not in ("false", "0", "no", "off")


def _as_int(section: dict[str, Any], key: str, default: int, prefix: str) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"'{prefix}.{key}' must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"'{prefix}.{key}' must be positive, got {value}")
    return value


def load_config(config_path: Path | None = None) -> AppConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    ai_raw = raw.get("ai", {}) or {}
    ai = AIConfig(
        base_url=(ai_raw.get("base_url") or os.environ.get("ALCOVE_PROXY_URL") or DEFAULT_PROXY_URL).rstrip("/"),
        api_key=ai_raw.get("api_key") or os.environ.get("ALCOVE_API_KEY", ""),
        model=ai_raw.get("model") or os.environ.get("ALCOVE_MODEL") or DEFAULT_MODEL,
        max_tokens=_as_int(ai_raw, "max_tokens", 8192, "ai"),
        stream=_as_bool(ai_raw.get("stream", True)),
        system_prompt=ai_raw.get("system_prompt") or os.environ.get("ALCOVE_SYSTEM_PROMPT", ""),
        api_version=str(ai_raw.get("api_version", "2023-06-01")),
        verify_ssl=_as_bool(ai_raw.get("verify_ssl", os.environ.get("ALCOVE_VERIFY_SSL", "true"))),
        request_timeout=_as_int(ai_raw, "request_timeout", 120, "ai"),
        connect_timeout=_as_int(ai_raw, "connect_timeout", 5, "ai"),
        write_timeout=_as_int(ai_raw, "write_timeout", 30, "ai"),
        pool_timeout=_as_int(ai_raw, "pool_timeout", 10, "ai"),
    )

    tools_raw = raw.get("tools", {}) or {}
    working_dir = tools_raw.get("working_dir")
    tools = ToolsConfig(
        working_dir=os.path.expanduser(working_dir) if working_dir else os.getcwd(),
        bash_timeout=_as_int(tools_raw, "bash_timeout", 120, "tools"),
        max_output_chars=_as_int(tools_raw, "max_output_chars", 30_000, "tools"),
    )

    chat_raw = raw.get("chat", {}) or {}
    chat = ChatConfig(max_turns=_as_int(chat_raw, "max_turns", 20, "chat"))

    app_raw = raw.get("app", {}) or {}
    app_settings = AppSettings(
        host=app_raw.get("host", "127.0.0.1"),
        port=_as_int(app_raw, "port", 8378, "app"),
        data_dir=Path(os.path.expanduser(app_raw.get("data_dir", "~/.alcove"))),
    )

    return AppConfig(ai=ai, tools=tools, chat=chat, app=app_settings)
