"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_UNITS = ("mmol/L", "mg/dL")


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass
class Config:
    api_base_url: str
    api_key: str
    api_password: str
    owner_name: str
    default_unit: str
    database_path: str
    token_file: str
    sync_interval_minutes: int
    sync_max_attempts: int
    sync_backoff_seconds: int
    request_timeout_seconds: int
    timezone: str
    log_level: str
    log_file: str
    health_port: int | None
    glucose_alerts: bool
    telegram_bot_token: str | None
    telegram_chat_id: str | None

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def _positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got: {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got: {value}")
    return value


def load_config() -> Config:
    """Load and validate configuration from environment variables."""
    required = {
        "KULUS_API_BASE_URL": os.getenv("KULUS_API_BASE_URL"),
        "KULUS_API_KEY": os.getenv("KULUS_API_KEY"),
        "KULUS_API_PASSWORD": os.getenv("KULUS_API_PASSWORD"),
    }

    missing = [k for k, v in required.items() if not v]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    base_url = required["KULUS_API_BASE_URL"].strip().rstrip("/")  # type: ignore[union-attr]
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"KULUS_API_BASE_URL must be an http(s) URL, got: {base_url!r}")

    default_unit = os.getenv("DEFAULT_UNIT", "mmol/L").strip()
    matching = [u for u in _UNITS if u.lower() == default_unit.lower()]
    if not matching:
        raise ConfigError(f"DEFAULT_UNIT must be one of {', '.join(_UNITS)}, got: {default_unit!r}")

    # Ensure data and logs directories exist
    database_path = os.getenv("DATABASE_PATH", "./data/glucose_sync.db")
    token_file = os.getenv("TOKEN_FILE", "./data/kulus_token.json")
    log_file = os.getenv("LOG_FILE", "./logs/glucose_sync.log")

    for path in (database_path, token_file, log_file):
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    # HEALTH_PORT: optional int
    health_port_raw = os.getenv("HEALTH_PORT")
    health_port: int | None = None
    if health_port_raw is not None:
        try:
            health_port = int(health_port_raw)
        except ValueError:
            raise ConfigError(f"HEALTH_PORT must be an integer, got: {health_port_raw!r}")

    # GLUCOSE_ALERTS: default True, False only if value is "false"
    glucose_alerts = os.getenv("GLUCOSE_ALERTS", "true").strip().lower() != "false"

    return Config(
        api_base_url=base_url,
        api_key=required["KULUS_API_KEY"],  # type: ignore[arg-type]
        api_password=required["KULUS_API_PASSWORD"],  # type: ignore[arg-type]
        owner_name=os.getenv("OWNER_NAME", "mobile-user"),
        default_unit=matching[0],
        database_path=database_path,
        token_file=token_file,
        sync_interval_minutes=_positive_int("SYNC_INTERVAL_MINUTES", "30"),
        sync_max_attempts=_positive_int("SYNC_MAX_ATTEMPTS", "3"),
        sync_backoff_seconds=_positive_int("SYNC_BACKOFF_SECONDS", "30"),
        request_timeout_seconds=_positive_int("REQUEST_TIMEOUT_SECONDS", "30"),
        timezone=os.getenv("TIMEZONE", "UTC"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=log_file,
        health_port=health_port,
        glucose_alerts=glucose_alerts,
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID") or None,
    )
