"""In-memory repositories for events, catalogs and availability records."""

from __future__ import annotations

import threading
from datetime import date

from app.domain.models import (
    Department,
    Event,
    EventStatus,
    Requirement,
    RequirementKind,
    ResourceAvailabilityRecord,
    TimelineEntry,
)


class EventRepository:
    """Dict-backed store for Event instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Event] = {}
        self._guard = threading.Lock()

    def add(self, event: Event) -> None:
        with self._guard:
            self._store[event.id] = event

    save = add

    def get(self, event_id: str) -> Event | None:
        return self._store.get(event_id)

    def list_all(self) -> list[Event]:
        with self._guard:
            return list(self._store.values())

    def list_by_status(self, *statuses: EventStatus) -> list[Event]:
        wanted = set(statuses)
        return [e for e in self.list_all() if e.status in wanted]


class DepartmentRepository:
    """Read-only view of the department/requirement catalog."""

    def __init__(self, departments: list[Department] | None = None) -> None:
        self._store: dict[str, Department] = {d.id: d for d in departments or []}

    def add(self, department: Department) -> None:
        self._store[department.id] = department

    def get(self, department_id: str) -> Department | None:
        return self._store.get(department_id)

    def get_by_name(self, name: str) -> Department | None:
        for department in self._store.values():
            if department.name == name:
                return department
        return None

    def list_all(self) -> list[Department]:
        return list(self._store.values())


class AvailabilityRepository:
    """Keyed store of ResourceAvailabilityRecord; one record per (department, requirement, date)."""

    def __init__(self) -> None:
        self._store: dict[tuple[str, str, date], ResourceAvailabilityRecord] = {}
        self._guard = threading.Lock()

    def upsert(self, record: ResourceAvailabilityRecord) -> ResourceAvailabilityRecord:
        with self._guard:
            self._store[record.key] = record
        return record

    def get(
        self, department_id: str, requirement_id: str, day: date
    ) -> ResourceAvailabilityRecord | None:
        return self._store.get((department_id, requirement_id, day))

    def delete(self, department_id: str, requirement_id: str, day: date) -> bool:
        with self._guard:
            return self._store.pop((department_id, requirement_id, day), None) is not None

    def list_for_department(
        self, department_id: str, start: date, end: date
    ) -> list[ResourceAvailabilityRecord]:
        """Records for a department with ``start <= date <= end``, ordered by date."""
        with self._guard:
            records = [
                r
                for r in self._store.values()
                if r.department_id == department_id and start <= r.date <= end
            ]
        return sorted(records, key=lambda r: (r.date, r.requirement_name))


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_event(self, event_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.event_id == event_id],
            key=lambda e: e.timestamp,
        )


# ---------------------------------------------------------------------------
# Seed data – a small catalog so the service is usable out of the box
# ---------------------------------------------------------------------------


def _seed_departments(repo: DepartmentRepository) -> None:
    repo.add(
        Department(
            name="PGSO",
            requirements=[
                Requirement(name="Tent", total_quantity=10),
                Requirement(name="Monobloc Chairs", total_quantity=200),
                Requirement(name="Tables", total_quantity=40),
            ],
        )
    )
    repo.add(
        Department(
            name="PICTO",
            requirements=[
                Requirement(name="Projector", total_quantity=3),
                Requirement(name="Sound System", total_quantity=2),
                Requirement(name="Technical Support", kind=RequirementKind.SERVICE),
            ],
        )
    )
    repo.add(
        Department(
            name="PIO",
            requirements=[
                Requirement(name="Photo Coverage", kind=RequirementKind.SERVICE),
                Requirement(name="Video Coverage", kind=RequirementKind.SERVICE),
            ],
        )
    )


def create_department_repository() -> DepartmentRepository:
    """Return a DepartmentRepository pre-loaded with a sample catalog."""
    repo = DepartmentRepository()
    _seed_departments(repo)
    return repo
