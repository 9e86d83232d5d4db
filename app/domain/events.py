"""Domain events emitted by the booking engine."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from app.domain.models import CancellationReason, EventStatus


class EventCreated(BaseModel):
    """Fired when a new booking request is stored."""

    event_id: str
    title: str
    location: str


class RequirementsSaved(BaseModel):
    """Fired when a department's selections pass allocation checks and are stored."""

    event_id: str
    department: str
    requirement_names: list[str] = Field(default_factory=list)


class EventStatusChanged(BaseModel):
    """Fired after every real status transition (no-ops are not published)."""

    event_id: str
    previous: EventStatus
    current: EventStatus
    reason: CancellationReason | None = None
    changed_at: datetime
    automatic: bool = False


class AvailabilityChanged(BaseModel):
    """Fired once per bulk or single-date mutation of a department's calendar."""

    department: str
    operation: str
    dates: list[date] = Field(default_factory=list)
    records_affected: int = 0
