"""Department availability calendar: bulk and single-date mutations."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from typing import Callable

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, rrule

from app.domain.bus import EventBus
from app.domain.errors import NotFound, ValidationError
from app.domain.events import AvailabilityChanged
from app.domain.models import (
    ACTIVE_STATUSES,
    BulkApplyResult,
    BulkOperation,
    DateFailure,
    DayAvailabilityEntry,
    Department,
    EventStatus,
    MonthSummary,
    ResourceAvailabilityRecord,
    first_of_month,
)
from app.repos.memory import AvailabilityRepository, DepartmentRepository, EventRepository
from app.utils.logger import get_logger


logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]

# Statuses shown on a department's booking calendar.
_CALENDAR_STATUSES = ACTIVE_STATUSES | {EventStatus.COMPLETED}


def month_dates(month: date) -> list[date]:
    """Every calendar date of the month containing ``month``."""
    first = first_of_month(month)
    last = first + relativedelta(months=1, days=-1)
    return [moment.date() for moment in rrule(DAILY, dtstart=first, until=last)]


class BulkAvailabilityMutator:
    def __init__(
        self,
        department_repo: DepartmentRepository,
        availability_repo: AvailabilityRepository,
        event_repo: EventRepository,
        bus: EventBus,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.department_repo = department_repo
        self.availability_repo = availability_repo
        self.event_repo = event_repo
        self.bus = bus
        self.today = today

    def _department(self, name: str) -> Department:
        department = self.department_repo.get_by_name(name)
        if department is None:
            raise NotFound(f"Department {name} not found", {"department": name})
        return department

    # ------------------------------------------------------------------
    # Protection
    # ------------------------------------------------------------------

    def is_protected(self, department: Department, day: date) -> bool:
        """True when an active event on ``day`` selects one of the department's requirements."""
        ids = {r.id for r in department.requirements}
        names = {r.name for r in department.requirements}
        for event in self.event_repo.list_all():
            if event.status not in ACTIVE_STATUSES or not event.occurs_on(day):
                continue
            for tagged, selection in event.selected_requirements():
                if tagged != department.name:
                    continue
                if selection.requirement_id in ids or selection.name in names:
                    return True
        return False

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def bulk_apply(
        self,
        department: str,
        month: date,
        operation: BulkOperation,
        today: date | None = None,
        progress: ProgressCallback | None = None,
    ) -> BulkApplyResult:
        """Apply ``operation`` to every current or future date of ``month``.

        Past dates are never touched. Failures on one date are recorded and
        processing continues with the next date.
        """
        return self._apply(
            self._department(department), month_dates(month), operation, today, progress
        )

    def delete_dates(
        self,
        department: str,
        dates: Iterable[date],
        today: date | None = None,
        progress: ProgressCallback | None = None,
    ) -> BulkApplyResult:
        """Delete availability on hand-picked dates, with the same protection as ``bulk_apply``."""
        return self._apply(
            self._department(department),
            sorted(set(dates)),
            BulkOperation.DELETE,
            today,
            progress,
        )

    def _apply(
        self,
        department: Department,
        candidates: list[date],
        operation: BulkOperation,
        today: date | None,
        progress: ProgressCallback | None,
    ) -> BulkApplyResult:
        today = today or self.today()
        result = BulkApplyResult(operation=operation, department=department.name)
        requirements = department.active_requirements()
        if not requirements:
            logger.warning("Department %s has no requirements, nothing to %s", department.name, operation)
            return result

        dates = [day for day in candidates if day >= today]
        for index, day in enumerate(dates, start=1):
            try:
                if operation == BulkOperation.DELETE and self.is_protected(department, day):
                    result.protected_dates.append(day)
                else:
                    result.records_affected += self._apply_day(department, day, operation)
                    result.dates_processed.append(day)
            except Exception as exc:
                logger.warning("%s failed for %s on %s: %s", operation, department.name, day, exc)
                result.failures.append(DateFailure(date=day, error=str(exc)))
            if progress is not None:
                progress(index / len(dates))

        logger.info(
            "%s for %s: %d date(s), %d record(s), %d protected, %d failed",
            operation,
            department.name,
            len(result.dates_processed),
            result.records_affected,
            len(result.protected_dates),
            len(result.failures),
        )
        self.bus.publish(
            AvailabilityChanged(
                department=department.name,
                operation=operation.value,
                dates=result.dates_processed,
                records_affected=result.records_affected,
            )
        )
        return result

    def _apply_day(self, department: Department, day: date, operation: BulkOperation) -> int:
        affected = 0
        for requirement in department.active_requirements():
            if operation == BulkOperation.DELETE:
                affected += self.availability_repo.delete(department.id, requirement.id, day)
                continue
            self.availability_repo.upsert(
                ResourceAvailabilityRecord(
                    department_id=department.id,
                    department_name=department.name,
                    requirement_id=requirement.id,
                    requirement_name=requirement.name,
                    date=day,
                    is_available=operation == BulkOperation.SET_AVAILABLE,
                    quantity=requirement.total_quantity,
                    max_capacity=requirement.total_quantity,
                )
            )
            affected += 1
        return affected

    # ------------------------------------------------------------------
    # Single-date edit and calendar views
    # ------------------------------------------------------------------

    def save_day(
        self,
        department: str,
        day: date,
        entries: list[DayAvailabilityEntry],
        today: date | None = None,
    ) -> list[ResourceAvailabilityRecord]:
        dept = self._department(department)
        if day < (today or self.today()):
            raise ValidationError("Past dates cannot be edited", {"date": day.isoformat()})

        records: list[ResourceAvailabilityRecord] = []
        for entry in entries:
            requirement = dept.find_requirement(entry.requirement_id)
            if requirement is None:
                raise ValidationError(
                    f"{department} has no requirement {entry.requirement_id}",
                    {"requirement_id": entry.requirement_id},
                )
            if entry.quantity > requirement.total_quantity:
                raise ValidationError(
                    f"{requirement.name} quantity {entry.quantity} exceeds capacity "
                    f"{requirement.total_quantity}",
                    {"requirement": requirement.name, "max_capacity": requirement.total_quantity},
                )
            records.append(
                ResourceAvailabilityRecord(
                    department_id=dept.id,
                    department_name=dept.name,
                    requirement_id=requirement.id,
                    requirement_name=requirement.name,
                    date=day,
                    is_available=entry.is_available,
                    quantity=entry.quantity,
                    max_capacity=requirement.total_quantity,
                    notes=entry.notes,
                )
            )

        for record in records:
            self.availability_repo.upsert(record)
        self.bus.publish(
            AvailabilityChanged(
                department=dept.name,
                operation="save_day",
                dates=[day],
                records_affected=len(records),
            )
        )
        return records

    def list_month(self, department: str, month: date) -> list[ResourceAvailabilityRecord]:
        dept = self._department(department)
        days = month_dates(month)
        return self.availability_repo.list_for_department(dept.id, days[0], days[-1])

    def month_summary(self, department: str, month: date) -> MonthSummary:
        dept = self._department(department)
        records = self.list_month(department, month)
        available = sum(1 for r in records if r.is_available)
        return MonthSummary(
            month=first_of_month(month),
            available=available,
            unavailable=len(records) - available,
            total_requirements=len(dept.active_requirements()),
        )

    def department_bookings(self, department: str, month: date) -> dict[date, list[str]]:
        """Date -> titles of events tagging the department, multi-day events on every day."""
        dept = self._department(department)
        days = set(month_dates(month))
        bookings: dict[date, list[str]] = {}
        for event in self.event_repo.list_all():
            if event.status not in _CALENDAR_STATUSES or dept.name not in event.tagged_departments:
                continue
            for day in event.occurrence_dates():
                if day in days:
                    bookings.setdefault(day, []).append(event.title)
        return dict(sorted(bookings.items()))
