"""Runtime configuration.

Settings come from environment variables. A .env.local file in the working
directory (or the path passed to load()) is read first with python-dotenv;
real environment variables win over it.

    CHAT_RELAY_MODE          agent | canned (default: agent if OPENAI_API_KEY is set)
    CHAT_RELAY_MODEL         model name for the agent
    CHAT_RELAY_AGENT_NAME    agent display name
    CHAT_RELAY_INSTRUCTIONS  agent system instructions
    CHAT_RELAY_HOST          bind host for `chat-relay serve`
    CHAT_RELAY_PORT          bind port for `chat-relay serve`
    CHAT_RELAY_LOG_LEVEL     logging level name
    CHAT_RELAY_MAX_SESSIONS  upstream sessions kept in memory
    CHAT_RELAY_CANNED_DELAY  seconds between canned fragments
    CHAT_RELAY_URL           WebSocket URL used by `chat-relay chat`
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

from .errors import ConfigError

Mode = Literal["agent", "canned"]

DEFAULT_INSTRUCTIONS = (
    "You are Buddy, a warm and patient companion. Listen carefully, answer "
    "briefly and kindly, and encourage the user to reach out to people they "
    "trust or to professional help when they are struggling."
)


@dataclass(frozen=True)
class RelayConfig:
    mode: Mode = "canned"
    model: str = "gpt-5.2"
    agent_name: str = "Buddy"
    instructions: str = DEFAULT_INSTRUCTIONS
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    max_sessions: int = 256
    canned_delay: float = 0.05
    url: str = "ws://127.0.0.1:8000/ws"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelayConfig:
        """Build config from environment variables."""
        env = os.environ if environ is None else environ

        mode = env.get("CHAT_RELAY_MODE") or ("agent" if env.get("OPENAI_API_KEY") else "canned")
        if mode not in ("agent", "canned"):
            raise ConfigError(f"CHAT_RELAY_MODE must be 'agent' or 'canned', got {mode!r}")

        log_level = env.get("CHAT_RELAY_LOG_LEVEL", cls.log_level).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"Unknown CHAT_RELAY_LOG_LEVEL {log_level!r}")

        port = parse_number(env, "CHAT_RELAY_PORT", cls.port, int)
        max_sessions = parse_number(env, "CHAT_RELAY_MAX_SESSIONS", cls.max_sessions, int)
        if max_sessions < 1:
            raise ConfigError("CHAT_RELAY_MAX_SESSIONS must be at least 1")
        canned_delay = parse_number(env, "CHAT_RELAY_CANNED_DELAY", cls.canned_delay, float)
        if canned_delay < 0:
            raise ConfigError("CHAT_RELAY_CANNED_DELAY must not be negative")

        return cls(
            mode=mode,
            model=env.get("CHAT_RELAY_MODEL", cls.model),
            agent_name=env.get("CHAT_RELAY_AGENT_NAME", cls.agent_name),
            instructions=env.get("CHAT_RELAY_INSTRUCTIONS", cls.instructions),
            host=env.get("CHAT_RELAY_HOST", cls.host),
            port=port,
            log_level=log_level,
            max_sessions=max_sessions,
            canned_delay=canned_delay,
            url=env.get("CHAT_RELAY_URL", cls.url),
        )

    @classmethod
    def load(cls, env_file: str | Path = ".env.local") -> RelayConfig:
        """Read env_file (if present) into the environment, then from_env()."""
        load_dotenv(Path(env_file), override=False)
        return cls.from_env()


def parse_number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
