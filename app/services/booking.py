"""Booking workflow: venue check, resource checks and commit under keyed locks."""

from __future__ import annotations

from datetime import date, time

import pydantic

from app.domain.bus import EventBus
from app.domain.errors import NotFound, ValidationError
from app.domain.events import EventCreated, RequirementsSaved
from app.domain.models import (
    CancellationReason,
    ConflictSummary,
    CreateEventRequest,
    Event,
    EventStatus,
    RequirementKind,
    RequirementSelection,
    ResourceCheckRequest,
    ResourceCheckResponse,
    VenueCheckRequest,
    VenueCheckResponse,
)
from app.repos.memory import DepartmentRepository, EventRepository
from app.services.allocation import ResourceAllocationCalculator
from app.services.lifecycle import EventStatusMachine, event_lock_key
from app.services.locks import KeyedLocks
from app.services.timeslots import format_duration
from app.services.venues import VenueAvailabilityResolver
from app.utils.logger import get_logger


logger = get_logger(__name__)


def venue_lock_key(location: str, day: date) -> tuple[str, str, date]:
    return ("venue", location, day)


def resource_lock_key(name: str, day: date) -> tuple[str, str, date]:
    return ("resource", name, day)


def _summary(event: Event) -> ConflictSummary:
    duration = None
    if event.has_times:
        duration = format_duration(
            event.start_date, event.start_time, event.end_date, event.end_time
        )
    return ConflictSummary.from_event(event, duration=duration)


class BookingService:
    """Entry point for requesters and administrators.

    Resource conflicts are soft while previewing (``check_resources``) and
    hard when saving a department's selections or submitting. Venue
    conflicts are always hard.
    """

    def __init__(
        self,
        event_repo: EventRepository,
        department_repo: DepartmentRepository,
        venues: VenueAvailabilityResolver,
        allocation: ResourceAllocationCalculator,
        status_machine: EventStatusMachine,
        bus: EventBus,
        locks: KeyedLocks,
    ) -> None:
        self.event_repo = event_repo
        self.department_repo = department_repo
        self.venues = venues
        self.allocation = allocation
        self.status_machine = status_machine
        self.bus = bus
        self.locks = locks

    def get_event(self, event_id: str) -> Event:
        event = self.event_repo.get(event_id)
        if event is None:
            raise NotFound(f"Event {event_id} not found", {"event_id": event_id})
        return event

    # ------------------------------------------------------------------
    # Previews
    # ------------------------------------------------------------------

    def check_venue(self, request: VenueCheckRequest) -> VenueCheckResponse:
        conflicts = self.venues.venue_conflicts(
            request.date,
            request.start_time,
            request.end_time,
            request.location,
            exclude_event_id=request.exclude_event_id,
        )
        return VenueCheckResponse(
            conflict=bool(conflicts),
            conflicting_events=[_summary(e) for e in conflicts],
        )

    def check_resources(self, request: ResourceCheckRequest) -> ResourceCheckResponse:
        checks = self.allocation.check_selections(
            request.department,
            request.selections,
            [request.date],
            request.start_time,
            request.end_time,
            exclude_event_id=request.exclude_event_id,
        )
        warnings = [
            f"{c.requirement}: requested {c.requested}, only {c.available} available"
            for c in checks
            if not c.ok
        ]
        return ResourceCheckResponse(ok=not warnings, checks=checks, warnings=warnings)

    # ------------------------------------------------------------------
    # Requester actions
    # ------------------------------------------------------------------

    def create_event(self, request: CreateEventRequest) -> Event:
        """Store a draft after confirming the venue is free on every covered day."""
        try:
            event = Event(**request.model_dump())
        except pydantic.ValidationError as exc:
            errors = exc.errors(include_url=False, include_context=False, include_input=False)
            raise ValidationError("Invalid event schedule", {"errors": errors}) from exc

        if event.has_times:
            for day in event.occurrence_dates():
                self.venues.ensure_venue_free(
                    day, event.start_time, event.end_time, event.location
                )
        self.event_repo.add(event)
        self.bus.publish(
            EventCreated(event_id=event.id, title=event.title, location=event.location)
        )
        return event

    def save_requirements(
        self, event_id: str, department: str, selections: list[RequirementSelection]
    ) -> Event:
        """Validate one department's selections against remaining stock and store them.

        Runs under the event's lock so a concurrent submission or status
        change cannot be overwritten by the stale draft.
        """
        with self.locks.hold(event_lock_key(event_id)):
            event = self.get_event(event_id)
            if event.status != EventStatus.DRAFT:
                raise ValidationError(
                    f"Requirements can only be changed on draft events, not {event.status}",
                    {"status": event.status},
                )
            if self.department_repo.get_by_name(department) is None:
                raise NotFound(f"Department {department} not found", {"department": department})

            self.allocation.validate_selections(
                department,
                selections,
                event.occurrence_dates(),
                event.start_time,
                event.end_time,
                exclude_event_id=event.id,
            )

            requirements = dict(event.department_requirements)
            requirements[department] = list(selections)
            tagged = list(event.tagged_departments)
            if department not in tagged:
                tagged.append(department)
            updated = event.model_copy(
                update={"department_requirements": requirements, "tagged_departments": tagged}
            )
            self.event_repo.save(updated)

        self.bus.publish(
            RequirementsSaved(
                event_id=event.id,
                department=department,
                requirement_names=[s.name for s in selections if s.selected],
            )
        )
        return updated

    def submit(self, event_id: str) -> Event:
        """Final submission: every check is hard and runs inside the locks.

        The event's own lock is taken first, then the venue and resource
        keys for every covered day.
        """
        with self.locks.hold(event_lock_key(event_id)):
            event = self.get_event(event_id)
            if event.status != EventStatus.DRAFT:
                return self.status_machine.transition(event_id, EventStatus.SUBMITTED)
            if not event.has_times:
                raise ValidationError("Choose a start and end time before submitting", {})
            if not any(True for _ in event.selected_requirements()):
                raise ValidationError(
                    "Tag at least one department and select its requirements", {}
                )

            with self.locks.hold(*self._lock_keys(event)):
                self._ensure_bookable(event)
                submitted = self.status_machine.transition(event_id, EventStatus.SUBMITTED)
        logger.info("Event %s submitted for %s", event_id, event.location)
        return submitted

    # ------------------------------------------------------------------
    # Administrator actions
    # ------------------------------------------------------------------

    def update_status(
        self,
        event_id: str,
        status: EventStatus,
        reason: CancellationReason | None = None,
    ) -> Event:
        if status == EventStatus.SUBMITTED:
            return self.submit(event_id)
        return self.status_machine.transition(event_id, status, reason=reason)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_keys(self, event: Event) -> list[tuple[str, str, date]]:
        days = event.occurrence_dates()
        keys = [venue_lock_key(event.location, day) for day in days]
        names = {
            selection.name
            for _, selection in event.selected_requirements()
            if selection.kind == RequirementKind.PHYSICAL
        }
        keys.extend(resource_lock_key(name, day) for name in names for day in days)
        return keys

    def _ensure_bookable(self, event: Event) -> None:
        start: time = event.start_time
        end: time = event.end_time
        days = event.occurrence_dates()
        for day in days:
            self.venues.ensure_venue_free(
                day, start, end, event.location, exclude_event_id=event.id
            )
        for department in event.tagged_departments:
            selections = event.department_requirements.get(department, [])
            if not any(s.selected for s in selections):
                continue
            self.allocation.validate_selections(
                department, selections, days, start, end, exclude_event_id=event.id
            )
