"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

from app.domain.bus import EventBus
from app.domain.events import (
    AvailabilityChanged,
    EventCreated,
    EventStatusChanged,
    RequirementsSaved,
)
from app.domain.models import TimelineEntry, TimelineEntryType
from app.repos.memory import TimelineRepository
from app.utils.logger import get_logger


logger = get_logger(__name__)


class HandlerRegistry:
    """Subscribes the audit-trail handlers to the bus."""

    def __init__(self, bus: EventBus, timeline_repo: TimelineRepository) -> None:
        self.bus = bus
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(EventCreated, self.on_event_created)
        self.bus.subscribe(RequirementsSaved, self.on_requirements_saved)
        self.bus.subscribe(EventStatusChanged, self.on_status_changed)
        self.bus.subscribe(AvailabilityChanged, self.on_availability_changed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_event_created(self, event: EventCreated) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.CREATED,
                payload={"title": event.title, "location": event.location},
            )
        )
        logger.info("Event %s created for %s", event.event_id, event.location)

    def on_requirements_saved(self, event: RequirementsSaved) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                type=TimelineEntryType.REQUIREMENTS_SAVED,
                payload={
                    "department": event.department,
                    "requirements": event.requirement_names,
                },
            )
        )

    def on_status_changed(self, event: EventStatusChanged) -> None:
        entry_type = (
            TimelineEntryType.AUTO_COMPLETED
            if event.automatic
            else TimelineEntryType.STATUS_CHANGED
        )
        payload = {"from": event.previous.value, "to": event.current.value}
        if event.reason is not None:
            payload["reason"] = event.reason.value
        self.timeline_repo.add(
            TimelineEntry(
                event_id=event.event_id,
                timestamp=event.changed_at,
                type=entry_type,
                payload=payload,
            )
        )
        logger.info(
            "Event %s moved %s -> %s%s",
            event.event_id,
            event.previous,
            event.current,
            " (automatic)" if event.automatic else "",
        )

    def on_availability_changed(self, event: AvailabilityChanged) -> None:
        logger.info(
            "Availability %s for %s: %d record(s) over %d date(s)",
            event.operation,
            event.department,
            event.records_affected,
            len(event.dates),
        )
