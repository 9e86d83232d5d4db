"""Shared fixtures: a fresh, fully wired engine per test."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import date, datetime, time

import pytest

from app.domain.bus import EventBus
from app.domain.handlers import HandlerRegistry
from app.domain.models import (
    Department,
    Event,
    EventStatus,
    Requirement,
    RequirementKind,
    RequirementSelection,
)
from app.repos.memory import (
    AvailabilityRepository,
    DepartmentRepository,
    EventRepository,
    TimelineRepository,
)
from app.services.allocation import ResourceAllocationCalculator
from app.services.availability import BulkAvailabilityMutator
from app.services.booking import BookingService
from app.services.lifecycle import EventStatusMachine
from app.services.locks import KeyedLocks
from app.services.venues import VenueAvailabilityResolver

DAY = date(2024, 6, 1)
NOW = datetime(2024, 6, 2, 9, 0)


def t(value: str) -> time:
    return time.fromisoformat(value)


def selection(
    name: str,
    quantity: int | None = None,
    requirement_id: str | None = None,
    kind: RequirementKind = RequirementKind.PHYSICAL,
    selected: bool = True,
    is_custom: bool = False,
) -> RequirementSelection:
    return RequirementSelection(
        requirement_id=requirement_id or f"custom-{name}",
        name=name,
        kind=kind,
        selected=selected,
        quantity=quantity,
        is_custom=is_custom,
    )


def make_event(**overrides) -> Event:
    defaults = dict(
        title="Existing booking",
        location="Main Hall",
        start_date=DAY,
        end_date=DAY,
        start_time=t("09:00"),
        end_time=t("11:00"),
        status=EventStatus.APPROVED,
    )
    defaults.update(overrides)
    return Event(**defaults)


@contextmanager
def held_elsewhere(locks: KeyedLocks, *keys):
    """Hold ``keys`` on a background thread for the duration of the block."""
    acquired = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold(*keys, timeout=5):
            acquired.set()
            release.wait(10)

    thread = threading.Thread(target=holder, daemon=True)
    thread.start()
    assert acquired.wait(5)
    try:
        yield
    finally:
        release.set()
        thread.join(5)


class Env:
    pass


@pytest.fixture()
def env():
    """Fresh bus + repos + services for each test."""
    e = Env()
    e.bus = EventBus()
    e.event_repo = EventRepository()
    e.timeline_repo = TimelineRepository()
    e.availability_repo = AvailabilityRepository()

    e.projector = Requirement(name="Projector", total_quantity=3)
    e.tent = Requirement(name="Tent", total_quantity=5)
    e.coverage = Requirement(name="Photo Coverage", kind=RequirementKind.SERVICE)
    e.picto = Department(name="PICTO", requirements=[e.projector, e.coverage])
    e.pgso = Department(name="PGSO", requirements=[e.tent])
    e.department_repo = DepartmentRepository([e.picto, e.pgso])

    e.locks = KeyedLocks(timeout_seconds=0.2)
    e.registry = HandlerRegistry(bus=e.bus, timeline_repo=e.timeline_repo)
    e.venues = VenueAvailabilityResolver(e.event_repo)
    e.allocation = ResourceAllocationCalculator(
        e.event_repo, e.department_repo, e.availability_repo
    )
    e.machine = EventStatusMachine(e.event_repo, e.bus, e.locks, clock=lambda: NOW)
    e.booking = BookingService(
        event_repo=e.event_repo,
        department_repo=e.department_repo,
        venues=e.venues,
        allocation=e.allocation,
        status_machine=e.machine,
        bus=e.bus,
        locks=e.locks,
    )
    e.mutator = BulkAvailabilityMutator(
        e.department_repo, e.availability_repo, e.event_repo, e.bus, today=lambda: DAY
    )
    return e
