"""Overlap predicates shared by the venue and resource checks."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, time

from app.domain.models import ACTIVE_STATUSES, Event
from app.services.timeslots import to_minutes
from app.utils.logger import get_logger


logger = get_logger(__name__)


def spans_overlap(
    date1: date,
    start1: time | None,
    end1: time | None,
    date2: date,
    start2: time | None,
    end2: time | None,
) -> bool:
    """Return True iff two same-day spans share at least one instant.

    Half-open semantics: a span ending at 11:00 does not overlap one starting
    at 11:00. Spans on different dates never overlap. A span with a missing
    time cannot be compared and is reported as not overlapping.
    """
    if date1 != date2:
        return False
    if start1 is None or end1 is None or start2 is None or end2 is None:
        return False
    return to_minutes(start1) < to_minutes(end2) and to_minutes(start2) < to_minutes(end1)


def slot_within(slot: time, start: time, end: time) -> bool:
    """Inclusive test used only to grey out selectable slots.

    Both boundaries count, so an event 08:00-10:00 blocks the 08:00 and
    10:00 slots as well as everything between them.
    """
    return to_minutes(start) <= to_minutes(slot) <= to_minutes(end)


def event_overlaps(event: Event, day: date, start: time, end: time) -> bool:
    """Overlap of the event's occurrence on ``day`` (if any) with ``start``-``end``."""
    if not event.occurs_on(day):
        return False
    return spans_overlap(day, event.start_time, event.end_time, day, start, end)


def find_conflicts(
    day: date,
    start: time,
    end: time,
    existing_events: Iterable[Event],
    exclude_event_id: str | None = None,
) -> list[Event]:
    """Return active events whose occurrence on ``day`` overlaps ``start``-``end``.

    Events without start/end times are excluded; they cannot be placed on
    the clock, so they never block a booking.
    """
    conflicts: list[Event] = []
    for event in existing_events:
        if event.id == exclude_event_id or event.status not in ACTIVE_STATUSES:
            continue
        if not event.has_times:
            if event.occurs_on(day):
                logger.debug("Skipping event %s without times on %s", event.id, day)
            continue
        if event_overlaps(event, day, start, end):
            conflicts.append(event)
    return conflicts
