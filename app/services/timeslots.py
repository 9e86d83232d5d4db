"""Time-of-day helpers: minute arithmetic, slot enumeration and display."""

from __future__ import annotations

from datetime import date, time, timedelta

from app.utils.config import Settings, get_settings


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def time_options(settings: Settings | None = None) -> list[time]:
    """Selectable times from the start to the end of the booking day, both inclusive."""
    settings = settings or get_settings()
    first = to_minutes(settings.day_start)
    last = to_minutes(settings.day_end)
    return [from_minutes(m) for m in range(first, last + 1, settings.slot_minutes)]


def format_time(value: time) -> str:
    """Render ``13:30`` as ``1:30 PM``."""
    hour = value.hour % 12 or 12
    suffix = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_duration(start_date: date, start: time, end_date: date, end: time) -> str:
    """Human duration between two instants, e.g. ``2h 30m`` or ``45m``."""
    delta = (end_date - start_date) + timedelta(
        minutes=to_minutes(end) - to_minutes(start)
    )
    total_minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
