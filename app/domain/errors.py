"""Error taxonomy raised by the booking engine.

Every error carries a human-readable ``message`` and a structured ``detail``
dict so the HTTP layer can render a precise response without re-deriving
anything.
"""

from __future__ import annotations

from typing import Any


class BookingError(Exception):
    """Base class for all engine errors."""

    status_code = 400
    retryable = False

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "detail": self.detail,
            "retryable": self.retryable,
        }


class VenueConflict(BookingError):
    """The venue is already booked for an overlapping window. Never overridable."""

    status_code = 409

    def __init__(self, location: str, conflicting: list[tuple[str, str]]) -> None:
        titles = ", ".join(f"{title} ({event_id})" for event_id, title in conflicting)
        super().__init__(
            f"{location} is already booked by: {titles}",
            {
                "location": location,
                "conflicting_event_ids": [event_id for event_id, _ in conflicting],
                "conflicting_titles": [title for _, title in conflicting],
            },
        )


class ResourceOverAllocation(BookingError):
    status_code = 409

    def __init__(self, shortfalls: list[dict[str, Any]]) -> None:
        parts = ", ".join(
            f"{s['requirement']} (requested: {s['requested']}, available: {s['available']})"
            for s in shortfalls
        )
        super().__init__(
            f"Requested quantities exceed available resources: {parts}",
            {"shortfalls": shortfalls},
        )


class InvalidTransition(BookingError):
    status_code = 409

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        message = f"Cannot move event from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"current": current, "target": target})


class TransientStoreFailure(BookingError):
    """I/O or lock contention the caller may retry."""

    status_code = 503
    retryable = True


class ValidationError(BookingError):
    status_code = 422


class NotFound(BookingError):
    status_code = 404
