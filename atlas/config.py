"""Atlas — application configuration.

Loads .env variables into a typed config object.
Validates values on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str
    log_level: str
    api_port: int
    sync_interval_seconds: int
    fetch_timeout_seconds: float
    weekly_summary_weekday: int  # 0 = Monday ... 6 = Sunday
    weekly_summary_hour: int  # local hour the weekly window opens
    default_language: str


def _int_var(name: str, default: str, low: int | None = None, high: int | None = None) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if low is not None and value < low:
        raise ValueError(f"{name} must be at least {low}, got {value}")
    if high is not None and value > high:
        raise ValueError(f"{name} must be at most {high}, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the variable when a value
    is malformed or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    timeout_raw = os.environ.get("FETCH_TIMEOUT_SECONDS", "30")
    try:
        timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"FETCH_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}"
        ) from None

    return Config(
        db_path=os.environ.get("DB_PATH", "data/atlas.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_int_var("API_PORT", "8080", 1, 65535),
        sync_interval_seconds=_int_var("SYNC_INTERVAL_SECONDS", "3600", 1),
        fetch_timeout_seconds=timeout,
        weekly_summary_weekday=_int_var("WEEKLY_SUMMARY_WEEKDAY", "6", 0, 6),
        weekly_summary_hour=_int_var("WEEKLY_SUMMARY_HOUR", "18", 0, 23),
        default_language=os.environ.get("DEFAULT_LANGUAGE", "en"),
    )
