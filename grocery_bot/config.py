"""TOML configuration loader for the grocery bot."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class TelegramConfig:
    token: str = ""
    # Usernames or first names; empty means everyone is allowed
    authorized_users: list[str] = field(default_factory=list)
    poll_timeout: int = 30


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class ClaudeConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class AIConfig:
    backend: str = "gemini"
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)


@dataclass
class DatabaseConfig:
    path: str = "~/.config/grocery-bot/grocery_bot.db"


@dataclass
class CacheConfig:
    path: str = "~/.config/grocery-bot/product_cache.json"


@dataclass
class SessionConfig:
    expire_hours: float = 24
    cleanup_schedule: str = "0 * * * *"


@dataclass
class BotConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)


def _split_users(value: str) -> list[str]:
    return [u.strip() for u in value.split(",") if u.strip()]


def load_config(path: str | Path | None = None) -> BotConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    Secrets and the allow-list can come from environment variables; a value
    in the file wins over the environment.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    tg = raw.get("telegram", {})
    ai = raw.get("ai", {})
    db = raw.get("database", {})
    cch = raw.get("cache", {})
    ses = raw.get("sessions", {})

    gemini_cfg = ai.get("gemini", {})
    claude_cfg = ai.get("claude", {})

    # Resolve secrets: config file → environment variable
    token = tg.get("token", "") or os.environ.get("TELEGRAM_TOKEN", "")
    gemini_api_key = (
        gemini_cfg.get("api_key", "")
        or os.environ.get("GOOGLE_API_KEY", "")
        or os.environ.get("GEMINI_API_KEY", "")
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    authorized_users = tg.get("authorized_users") or _split_users(
        os.environ.get("AUTHORIZED_USERS", "")
    )

    return BotConfig(
        telegram=TelegramConfig(
            token=token,
            authorized_users=list(authorized_users),
            poll_timeout=tg.get("poll_timeout", 30),
        ),
        ai=AIConfig(
            backend=ai.get("backend", "gemini"),
            gemini=GeminiConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
            claude=ClaudeConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        database=DatabaseConfig(
            path=db.get("path", "~/.config/grocery-bot/grocery_bot.db"),
        ),
        cache=CacheConfig(
            path=cch.get("path", "~/.config/grocery-bot/product_cache.json"),
        ),
        sessions=SessionConfig(
            expire_hours=ses.get("expire_hours", 24),
            cleanup_schedule=ses.get("cleanup_schedule", "0 * * * *"),
        ),
    )
