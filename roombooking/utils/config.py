"""Environment-driven settings for the booking service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from dotenv import load_dotenv

_PREFIX = "ROOMBOOKING_"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    app_name: str = "Room Booking Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    max_booking_hours: int = 24
    max_recurrence_occurrences: int = 500
    seed_demo_data: bool = True

    @property
    def max_booking_duration(self) -> timedelta:
        return timedelta(hours=self.max_booking_hours)


def _env(name: str, default: str) -> str:
    return os.getenv(_PREFIX + name, default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{_PREFIX}{name} must be > 0")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name, "true" if default else "false").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{_PREFIX}{name} must be a boolean, got {raw!r}")


def load_settings() -> Settings:
    """Build a fresh Settings object from the process environment."""
    load_dotenv()
    return Settings(
        app_name=_env("APP_NAME", Settings.app_name),
        app_version=_env("APP_VERSION", Settings.app_version),
        environment=_env("ENV", Settings.environment),
        log_level=_env("LOG_LEVEL", Settings.log_level).upper(),
        max_booking_hours=_env_int("MAX_BOOKING_HOURS", Settings.max_booking_hours),
        max_recurrence_occurrences=_env_int(
            "MAX_RECURRENCE_OCCURRENCES", Settings.max_recurrence_occurrences
        ),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", Settings.seed_demo_data),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
