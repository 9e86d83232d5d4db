"""Event status state machine and the auto-completion sweep."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from app.domain.bus import EventBus
from app.domain.errors import InvalidTransition, NotFound, TransientStoreFailure, ValidationError
from app.domain.events import EventStatusChanged
from app.domain.models import (
    TERMINAL_STATUSES,
    CancellationReason,
    Event,
    EventStatus,
)
from app.repos.memory import EventRepository
from app.services.locks import KeyedLocks
from app.utils.logger import get_logger


logger = get_logger(__name__)


def as_local_naive(moment: datetime) -> datetime:
    """Event instants are naive local times; convert aware values to match."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def event_lock_key(event_id: str) -> tuple[str, str]:
    return ("event", event_id)


ALLOWED_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.SUBMITTED}),
    EventStatus.SUBMITTED: frozenset({EventStatus.APPROVED, EventStatus.REJECTED}),
    EventStatus.APPROVED: frozenset({EventStatus.CANCELLED, EventStatus.COMPLETED}),
}


class EventStatusMachine:
    """Applies status transitions one event at a time.

    Transitions for the same event are serialized on an ``("event", id)``
    lock, so a sweep completing an event and an administrator cancelling it
    cannot both win: whoever reaches a terminal state first does, and the
    other gets InvalidTransition.
    """

    def __init__(
        self,
        event_repo: EventRepository,
        bus: EventBus,
        locks: KeyedLocks,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.event_repo = event_repo
        self.bus = bus
        self.locks = locks
        self.clock = clock

    def transition(
        self,
        event_id: str,
        target: EventStatus | str,
        reason: CancellationReason | None = None,
    ) -> Event:
        """Administrator/requester transition. Completion is reserved for the sweep."""
        event, _ = self._apply(event_id, target, reason=reason, automatic=False)
        return event

    def _apply(
        self,
        event_id: str,
        target: EventStatus | str,
        reason: CancellationReason | None = None,
        automatic: bool = False,
        now: datetime | None = None,
    ) -> tuple[Event, bool]:
        with self.locks.hold(event_lock_key(event_id)):
            event = self.event_repo.get(event_id)
            if event is None:
                raise NotFound(f"Event {event_id} not found", {"event_id": event_id})
            try:
                target = EventStatus(target)
            except ValueError:
                raise InvalidTransition(event.status, str(target), "unknown status") from None

            if target == event.status:
                return event, False
            if event.status in TERMINAL_STATUSES:
                raise InvalidTransition(event.status, target, f"{event.status} is final")
            if target not in ALLOWED_TRANSITIONS.get(event.status, frozenset()):
                raise InvalidTransition(event.status, target)
            if target == EventStatus.COMPLETED and not automatic:
                raise InvalidTransition(
                    event.status, target, "events complete automatically once they end"
                )
            if target == EventStatus.CANCELLED and reason is None:
                raise ValidationError(
                    "A cancellation reason is required",
                    {"allowed_reasons": [r.value for r in CancellationReason]},
                )

            changed_at = now or self.clock()
            previous = event.status
            updated = event.model_copy(
                update={
                    "status": target,
                    "updated_at": changed_at,
                    "cancellation_reason": reason if target == EventStatus.CANCELLED else None,
                }
            )
            self.event_repo.save(updated)

        try:
            self.bus.publish(
                EventStatusChanged(
                    event_id=event_id,
                    previous=previous,
                    current=target,
                    reason=updated.cancellation_reason,
                    changed_at=changed_at,
                    automatic=automatic,
                )
            )
        except Exception:
            # The transition is already stored; a failing subscriber must not undo it.
            logger.exception("Handlers failed for %s -> %s on %s", previous, target, event_id)
        return updated, True

    def expired_events(self, now: datetime) -> list[Event]:
        now = as_local_naive(now)
        return [
            e for e in self.event_repo.list_by_status(EventStatus.APPROVED) if e.end_instant < now
        ]

    def auto_complete_expired(self, now: datetime | None = None) -> list[str]:
        """Complete every approved event whose end instant is strictly before ``now``.

        Performs no writes at all when nothing has expired.
        """
        now = as_local_naive(now or self.clock())
        expired = self.expired_events(now)
        if not expired:
            return []

        completed: list[str] = []
        for event in expired:
            try:
                _, changed = self._apply(
                    event.id, EventStatus.COMPLETED, automatic=True, now=now
                )
            except InvalidTransition as exc:
                logger.info("Skipped auto-completion of %s: %s", event.id, exc.message)
                continue
            except TransientStoreFailure:
                logger.warning("Event %s busy, will retry on next sweep", event.id)
                continue
            if changed:
                completed.append(event.id)

        logger.info("Auto-completed %d of %d expired event(s)", len(completed), len(expired))
        return completed
