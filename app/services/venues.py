"""Venue double-booking checks."""

from __future__ import annotations

from datetime import date, time

from app.domain.errors import VenueConflict
from app.domain.models import ACTIVE_STATUSES, Event, SlotOption
from app.repos.memory import EventRepository
from app.services.conflicts import find_conflicts, slot_within
from app.services.timeslots import format_time, time_options, to_minutes
from app.utils.config import Settings, get_settings


class VenueAvailabilityResolver:
    """Answers whether a location is free for a window on a given day.

    Only events at exactly the same location (string equality) and in an
    active status are considered. All methods are pure reads.
    """

    def __init__(self, event_repo: EventRepository, settings: Settings | None = None) -> None:
        self.event_repo = event_repo
        self.settings = settings or get_settings()

    def _events_at(self, location: str) -> list[Event]:
        return [e for e in self.event_repo.list_all() if e.location == location]

    def venue_conflicts(
        self,
        day: date,
        start: time,
        end: time,
        location: str,
        exclude_event_id: str | None = None,
    ) -> list[Event]:
        return find_conflicts(
            day, start, end, self._events_at(location), exclude_event_id=exclude_event_id
        )

    def is_venue_conflicting(self, day: date, start: time, end: time, location: str) -> bool:
        return bool(self.venue_conflicts(day, start, end, location))

    def ensure_venue_free(
        self,
        day: date,
        start: time,
        end: time,
        location: str,
        exclude_event_id: str | None = None,
    ) -> None:
        """Raise VenueConflict when any active booking overlaps the window."""
        conflicts = self.venue_conflicts(day, start, end, location, exclude_event_id)
        if conflicts:
            raise VenueConflict(location, [(e.id, e.title) for e in conflicts])

    def is_slot_blocked(self, day: date, location: str, slot: time) -> bool:
        for event in self._events_at(location):
            if event.status not in ACTIVE_STATUSES or not event.has_times:
                continue
            if event.occurs_on(day) and slot_within(slot, event.start_time, event.end_time):
                return True
        return False

    def slot_options(self, day: date, location: str) -> list[SlotOption]:
        return [
            SlotOption(
                value=slot.strftime("%H:%M"),
                label=format_time(slot),
                blocked=self.is_slot_blocked(day, location, slot),
            )
            for slot in time_options(self.settings)
        ]

    def blocked_slots(self, day: date, location: str) -> list[time]:
        return [
            slot
            for slot in time_options(self.settings)
            if self.is_slot_blocked(day, location, slot)
        ]

    def available_end_times(self, start: time) -> list[time]:
        """End-time choices once a start has been picked: strictly later slots."""
        return [
            slot
            for slot in time_options(self.settings)
            if to_minutes(slot) > to_minutes(start)
        ]
