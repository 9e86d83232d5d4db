"""Environment-driven settings for the booking service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from functools import lru_cache


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_time(name: str, default: str) -> time:
    return time.fromisoformat(os.environ.get(name, default))


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    lock_timeout_seconds: float
    sweep_interval_seconds: float
    sweep_enabled: bool
    day_start: time
    day_end: time
    slot_minutes: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process. Call ``get_settings.cache_clear()`` in tests."""
    settings = Settings(
        app_name=os.environ.get("BOOKING_APP_NAME", "Event Booking Service"),
        app_version=os.environ.get("BOOKING_APP_VERSION", "0.1.0"),
        log_level=os.environ.get("BOOKING_LOG_LEVEL", "INFO"),
        lock_timeout_seconds=float(os.environ.get("BOOKING_LOCK_TIMEOUT_SECONDS", "5.0")),
        sweep_interval_seconds=float(os.environ.get("BOOKING_SWEEP_INTERVAL_SECONDS", "60")),
        sweep_enabled=_env_bool("BOOKING_SWEEP_ENABLED", True),
        day_start=_env_time("BOOKING_DAY_START", "07:00"),
        day_end=_env_time("BOOKING_DAY_END", "22:00"),
        slot_minutes=int(os.environ.get("BOOKING_SLOT_MINUTES", "30")),
    )
    if settings.slot_minutes <= 0 or 60 % settings.slot_minutes != 0:
        raise ValueError("BOOKING_SLOT_MINUTES must be a positive divisor of 60")
    if settings.day_end <= settings.day_start:
        raise ValueError("BOOKING_DAY_END must be after BOOKING_DAY_START")
    if settings.lock_timeout_seconds <= 0:
        raise ValueError("BOOKING_LOCK_TIMEOUT_SECONDS must be > 0")
    return settings
