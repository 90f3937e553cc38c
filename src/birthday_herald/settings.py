from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ANNOUNCE_INTERVAL_SECONDS = 3600.0


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    birthday_store_path: Path
    announce_interval_seconds: float


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _interval_env(name: str) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return DEFAULT_ANNOUNCE_INTERVAL_SECONDS

    try:
        interval = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds") from exc
    if interval <= 0:
        raise ValueError(f"{name} must be positive")
    return interval


def load_settings() -> Settings:
    root = Path.cwd()

    token = _required_env("TELEGRAM_BOT_TOKEN")
    birthday_store_path = Path(
        os.getenv("BIRTHDAY_STORE_PATH", root / "data" / "birthdays.json")
    )

    return Settings(
        telegram_bot_token=token,
        birthday_store_path=birthday_store_path,
        announce_interval_seconds=_interval_env("ANNOUNCE_INTERVAL_SECONDS"),
    )
