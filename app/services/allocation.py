"""Remaining-quantity arithmetic for contested resources.

Claims are pooled by requirement *display name*: every selected selection
named "Projector" in any overlapping active event, from any department and
whether catalog or custom, draws from the same pool.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, time

from app.domain.errors import ResourceOverAllocation, ValidationError
from app.domain.models import (
    ACTIVE_STATUSES,
    Event,
    RequirementKind,
    RequirementSelection,
    ResourceCheck,
)
from app.repos.memory import AvailabilityRepository, DepartmentRepository, EventRepository
from app.services.conflicts import find_conflicts, slot_within


def _claims(event: Event, name: str) -> bool:
    return any(selection.name == name for _, selection in event.selected_requirements())


class ResourceAllocationCalculator:
    def __init__(
        self,
        event_repo: EventRepository,
        department_repo: DepartmentRepository,
        availability_repo: AvailabilityRepository,
    ) -> None:
        self.event_repo = event_repo
        self.department_repo = department_repo
        self.availability_repo = availability_repo

    # ------------------------------------------------------------------
    # Conflict set and pooled claims
    # ------------------------------------------------------------------

    def resource_conflicts(
        self,
        name: str,
        day: date,
        start: time,
        end: time,
        exclude_event_id: str | None = None,
    ) -> list[Event]:
        """Active events at any location overlapping the window that select ``name``."""
        overlapping = find_conflicts(
            day, start, end, self.event_repo.list_all(), exclude_event_id=exclude_event_id
        )
        return [event for event in overlapping if _claims(event, name)]

    def claimed_quantity(
        self,
        name: str,
        day: date,
        start: time,
        end: time,
        exclude_event_id: str | None = None,
    ) -> int:
        return sum(
            selection.claimed_quantity
            for event in self.resource_conflicts(name, day, start, end, exclude_event_id)
            for _, selection in event.selected_requirements()
            if selection.name == name
        )

    def available_quantity(
        self,
        name: str,
        day: date,
        start: time,
        end: time,
        declared_capacity: int,
        exclude_event_id: str | None = None,
    ) -> int:
        claimed = self.claimed_quantity(name, day, start, end, exclude_event_id)
        return max(0, declared_capacity - claimed)

    def has_conflict(
        self,
        name: str,
        day: date,
        start: time,
        end: time,
        exclude_event_id: str | None = None,
    ) -> bool:
        return bool(self.resource_conflicts(name, day, start, end, exclude_event_id))

    # ------------------------------------------------------------------
    # Capacity lookup
    # ------------------------------------------------------------------

    def declared_capacity(
        self, department: str, selection: RequirementSelection, day: date
    ) -> int | None:
        """Capacity the supplying department declared for ``day``.

        A per-date availability record wins over the catalog default; an
        unavailable record means zero. Custom requirements without either
        have no known ceiling and return None.
        """
        dept = self.department_repo.get_by_name(department)
        if dept is None:
            return None
        record = self.availability_repo.get(dept.id, selection.requirement_id, day)
        if record is not None:
            return record.declared_capacity
        requirement = dept.find_requirement(selection.requirement_id)
        if requirement is None:
            return None
        return requirement.total_quantity

    # ------------------------------------------------------------------
    # Selection checks
    # ------------------------------------------------------------------

    def check_selections(
        self,
        department: str,
        selections: Sequence[RequirementSelection],
        days: Sequence[date],
        start: time,
        end: time,
        exclude_event_id: str | None = None,
    ) -> list[ResourceCheck]:
        """One check per selected physical selection, reporting its tightest day."""
        checks: list[ResourceCheck] = []
        for selection in selections:
            if not selection.selected or selection.kind != RequirementKind.PHYSICAL:
                continue
            requested = selection.quantity or 0
            worst: ResourceCheck | None = None
            for day in days:
                check = self._check_one(
                    department, selection, requested, day, start, end, exclude_event_id
                )
                if worst is None or _tighter(check, worst):
                    worst = check
            if worst is not None:
                checks.append(worst)
        return checks

    def _check_one(
        self,
        department: str,
        selection: RequirementSelection,
        requested: int,
        day: date,
        start: time,
        end: time,
        exclude_event_id: str | None,
    ) -> ResourceCheck:
        conflicts = self.resource_conflicts(selection.name, day, start, end, exclude_event_id)
        capacity = self.declared_capacity(department, selection, day)
        check = ResourceCheck(
            requirement=selection.name,
            department=department,
            requested=requested,
            capacity=capacity,
            has_conflict=bool(conflicts),
            conflicting_titles=[e.title for e in conflicts],
            day=day,
        )
        if capacity is None:
            return check
        if conflicts:
            claimed = sum(
                s.claimed_quantity
                for e in conflicts
                for _, s in e.selected_requirements()
                if s.name == selection.name
            )
            check.available = max(0, capacity - claimed)
        else:
            check.available = capacity
        check.ok = requested <= check.available
        return check

    def validate_selections(
        self,
        department: str,
        selections: Sequence[RequirementSelection],
        days: Sequence[date],
        start: time | None,
        end: time | None,
        exclude_event_id: str | None = None,
    ) -> list[ResourceCheck]:
        """Raise unless the selections can be saved as they are.

        Without a schedule only the quantities themselves and catalog
        ceilings are checked; pooled claims need a time window.
        """
        chosen = [s for s in selections if s.selected]
        if not chosen:
            raise ValidationError(
                f"Select at least one requirement for {department}",
                {"department": department},
            )
        missing = [
            s.name
            for s in chosen
            if s.kind == RequirementKind.PHYSICAL and (s.quantity is None or s.quantity < 1)
        ]
        if missing:
            raise ValidationError(
                f"Specify a quantity for: {', '.join(missing)}",
                {"department": department, "requirements": missing},
            )
        if start is None or end is None:
            checks = self._catalog_checks(department, chosen, days)
        else:
            checks = self.check_selections(
                department, chosen, days, start, end, exclude_event_id
            )
        shortfalls = [
            {
                "requirement": c.requirement,
                "department": c.department,
                "requested": c.requested,
                "available": c.available,
                "capacity": c.capacity,
                "date": c.day.isoformat() if c.day else None,
            }
            for c in checks
            if not c.ok
        ]
        if shortfalls:
            raise ResourceOverAllocation(shortfalls)
        return checks

    def _catalog_checks(
        self, department: str, selections: Sequence[RequirementSelection], days: Sequence[date]
    ) -> list[ResourceCheck]:
        checks: list[ResourceCheck] = []
        for selection in selections:
            if selection.kind != RequirementKind.PHYSICAL:
                continue
            capacities = [
                c
                for c in (self.declared_capacity(department, selection, day) for day in days)
                if c is not None
            ]
            check = ResourceCheck(
                requirement=selection.name,
                department=department,
                requested=selection.quantity or 0,
            )
            if capacities:
                check.capacity = check.available = min(capacities)
                check.ok = check.requested <= check.available
            checks.append(check)
        return checks

    # ------------------------------------------------------------------
    # Slot hints
    # ------------------------------------------------------------------

    def requirements_in_use_at(self, day: date, slot: time) -> list[str]:
        """Labels ``"name (department)"`` of physical requirements claimed at ``slot``."""
        in_use: list[str] = []
        for event in self.event_repo.list_all():
            if event.status not in ACTIVE_STATUSES or not event.has_times:
                continue
            if not event.occurs_on(day) or not slot_within(
                slot, event.start_time, event.end_time
            ):
                continue
            for department, selection in event.selected_requirements():
                label = f"{selection.name} ({department})"
                if selection.claimed_quantity > 0 and label not in in_use:
                    in_use.append(label)
        return in_use


def _tighter(candidate: ResourceCheck, current: ResourceCheck) -> bool:
    if candidate.ok != current.ok:
        return not candidate.ok
    if candidate.available is None:
        return False
    if current.available is None:
        return True
    return candidate.available < current.available
