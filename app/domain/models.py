"""Domain models for the departmental booking engine."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

from app.utils.config import get_settings


class EventStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Events in these statuses hold their venue and resources.
ACTIVE_STATUSES = frozenset({EventStatus.SUBMITTED, EventStatus.APPROVED})
TERMINAL_STATUSES = frozenset(
    {EventStatus.REJECTED, EventStatus.COMPLETED, EventStatus.CANCELLED}
)


class RequirementKind(StrEnum):
    PHYSICAL = "physical"
    SERVICE = "service"


class CancellationReason(StrEnum):
    CONFLICT_WITH_OTHER_EVENT = "Conflict with other event"
    VENUE_UNAVAILABLE = "Venue unavailable"
    REQUESTOR_CANCELLED = "Requestor cancelled"
    INSUFFICIENT_RESOURCES = "Insufficient resources"
    WEATHER_EMERGENCY = "Weather/Emergency"
    OTHER = "Other reason"


class BulkOperation(StrEnum):
    SET_AVAILABLE = "set_available"
    SET_UNAVAILABLE = "set_unavailable"
    DELETE = "delete"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    REQUIREMENTS_SAVED = "requirements_saved"
    STATUS_CHANGED = "status_changed"
    AUTO_COMPLETED = "auto_completed"


def _now() -> datetime:
    return datetime.now()


def _new_id() -> str:
    return str(uuid.uuid4())


def check_slot_granularity(value: time | None) -> time | None:
    if value is None:
        return None
    slot = get_settings().slot_minutes
    if value.second or value.microsecond or value.minute % slot:
        raise ValueError(f"times must fall on {slot}-minute boundaries")
    return value


def first_of_month(value: date) -> date:
    return value.replace(day=1)


# ---------------------------------------------------------------------------
# Catalog models
# ---------------------------------------------------------------------------


class Requirement(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    kind: RequirementKind = RequirementKind.PHYSICAL
    total_quantity: int = Field(default=0, ge=0)
    is_active: bool = True


class Department(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    requirements: list[Requirement] = Field(default_factory=list)

    def active_requirements(self) -> list[Requirement]:
        return [r for r in self.requirements if r.is_active]

    def find_requirement(self, requirement_id: str) -> Requirement | None:
        for requirement in self.requirements:
            if requirement.id == requirement_id:
                return requirement
        return None


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class RequirementSelection(BaseModel):
    requirement_id: str
    name: str
    kind: RequirementKind = RequirementKind.PHYSICAL
    selected: bool = True
    quantity: int | None = Field(default=None, ge=0)
    notes: str | None = None
    is_custom: bool = False

    @property
    def claimed_quantity(self) -> int:
        """Quantity this selection draws from its pool; services draw nothing."""
        if not self.selected or self.kind != RequirementKind.PHYSICAL:
            return 0
        return self.quantity or 0


class Event(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str = Field(min_length=1)
    requestor: str | None = None
    location: str = Field(min_length=1)
    start_date: date
    end_date: date
    start_time: time | None = None
    end_time: time | None = None
    status: EventStatus = EventStatus.DRAFT
    tagged_departments: list[str] = Field(default_factory=list)
    department_requirements: dict[str, list[RequirementSelection]] = Field(
        default_factory=dict
    )
    cancellation_reason: CancellationReason | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("start_time", "end_time")
    @classmethod
    def _on_slot_boundary(cls, value: time | None) -> time | None:
        return check_slot_granularity(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> Event:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        # Every covered day runs start_time-end_time, so the daily span itself
        # must move forward even when the dates differ.
        if self.has_times and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time on every covered day")
        return self

    @property
    def has_times(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    @property
    def start_instant(self) -> datetime:
        return datetime.combine(self.start_date, self.start_time or time.min)

    @property
    def end_instant(self) -> datetime:
        """End of the booking; an event without an end time runs to end of day."""
        return datetime.combine(self.end_date, self.end_time or time.max)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def occurrence_dates(self) -> list[date]:
        """Each calendar day this event covers; every day is a same-day span."""
        days = (self.end_date - self.start_date).days
        return [self.start_date + timedelta(days=offset) for offset in range(days + 1)]

    def occurs_on(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def selected_requirements(self) -> Iterator[tuple[str, RequirementSelection]]:
        """Yield (department, selection) for every selected requirement of a tagged department."""
        for department in self.tagged_departments:
            for selection in self.department_requirements.get(department, []):
                if selection.selected:
                    yield department, selection


class ResourceAvailabilityRecord(BaseModel):
    department_id: str
    department_name: str
    requirement_id: str
    requirement_name: str
    date: date
    is_available: bool = True
    quantity: int = Field(default=0, ge=0)
    max_capacity: int = Field(default=0, ge=0)
    notes: str = ""
    updated_at: datetime = Field(default_factory=_now)

    @property
    def key(self) -> tuple[str, str, date]:
        return (self.department_id, self.requirement_id, self.date)

    @property
    def declared_capacity(self) -> int:
        return self.quantity if self.is_available else 0


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    event_id: str
    timestamp: datetime = Field(default_factory=_now)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class TimeWindow(BaseModel):
    date: date
    start_time: time
    end_time: time

    @field_validator("start_time", "end_time")
    @classmethod
    def _on_slot_boundary(cls, value: time | None) -> time | None:
        return check_slot_granularity(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> TimeWindow:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class VenueCheckRequest(TimeWindow):
    location: str = Field(min_length=1)
    exclude_event_id: str | None = None


class ConflictSummary(BaseModel):
    id: str
    title: str
    location: str
    status: EventStatus
    start_time: time | None = None
    end_time: time | None = None
    duration: str | None = None

    @classmethod
    def from_event(cls, event: Event, duration: str | None = None) -> ConflictSummary:
        return cls(
            id=event.id,
            title=event.title,
            location=event.location,
            status=event.status,
            start_time=event.start_time,
            end_time=event.end_time,
            duration=duration,
        )


class VenueCheckResponse(BaseModel):
    conflict: bool
    conflicting_events: list[ConflictSummary] = Field(default_factory=list)


class ResourceCheckRequest(TimeWindow):
    department: str
    selections: list[RequirementSelection]
    exclude_event_id: str | None = None


class ResourceCheck(BaseModel):
    requirement: str
    department: str
    day: date | None = None
    requested: int = Field(ge=0)
    capacity: int | None = None
    available: int | None = None
    has_conflict: bool = False
    ok: bool = True
    conflicting_titles: list[str] = Field(default_factory=list)


class ResourceCheckResponse(BaseModel):
    ok: bool
    checks: list[ResourceCheck] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class SlotOption(BaseModel):
    value: str
    label: str
    blocked: bool = False


class CreateEventRequest(BaseModel):
    title: str = Field(min_length=1)
    requestor: str | None = None
    location: str = Field(min_length=1)
    start_date: date
    end_date: date
    start_time: time | None = None
    end_time: time | None = None


class SaveRequirementsRequest(BaseModel):
    selections: list[RequirementSelection] = Field(min_length=1)


class StatusUpdateRequest(BaseModel):
    status: EventStatus
    reason: CancellationReason | None = None


class SweepResult(BaseModel):
    time: datetime
    completed_event_ids: list[str] = Field(default_factory=list)


class DateFailure(BaseModel):
    date: date
    error: str


class BulkApplyResult(BaseModel):
    operation: BulkOperation
    department: str
    dates_processed: list[date] = Field(default_factory=list)
    records_affected: int = 0
    protected_dates: list[date] = Field(default_factory=list)
    failures: list[DateFailure] = Field(default_factory=list)


class BulkAvailabilityRequest(BaseModel):
    department: str
    month: date
    operation: BulkOperation
    today: date | None = None

    @field_validator("month")
    @classmethod
    def _normalize_month(cls, value: date) -> date:
        return first_of_month(value)


class DeleteDatesRequest(BaseModel):
    department: str
    dates: list[date] = Field(min_length=1)
    today: date | None = None


class DayAvailabilityEntry(BaseModel):
    requirement_id: str
    is_available: bool = True
    quantity: int = Field(default=0, ge=0)
    notes: str = ""


class DayAvailabilityRequest(BaseModel):
    entries: list[DayAvailabilityEntry] = Field(min_length=1)


class MonthSummary(BaseModel):
    month: date
    available: int = 0
    unavailable: int = 0
    total_requirements: int = 0
