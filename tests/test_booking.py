"""Tests for the booking workflow and its check-and-commit locking."""

from __future__ import annotations

import threading
from datetime import date

import pytest

from app.domain.errors import (
    InvalidTransition,
    ResourceOverAllocation,
    TransientStoreFailure,
    ValidationError,
    VenueConflict,
)
from app.domain.models import (
    CreateEventRequest,
    EventStatus,
    ResourceCheckRequest,
    TimelineEntryType,
    VenueCheckRequest,
)
from app.services.booking import resource_lock_key, venue_lock_key

from conftest import DAY, held_elsewhere, make_event, selection, t


def _draft(env, title="Request", location="Main Hall", start="09:00", end="11:00", **kwargs):
    return env.booking.create_event(
        CreateEventRequest(
            title=title,
            location=location,
            start_date=kwargs.get("start_date", DAY),
            end_date=kwargs.get("end_date", DAY),
            start_time=t(start),
            end_time=t(end),
        )
    )


def _with_projectors(env, event, quantity):
    return env.booking.save_requirements(
        event.id, "PICTO", [selection("Projector", quantity, env.projector.id)]
    )


def test_create_event_stores_draft_and_timeline(env):
    event = _draft(env)
    assert event.status == EventStatus.DRAFT
    assert env.event_repo.get(event.id) is event
    entries = env.timeline_repo.list_for_event(event.id)
    assert [e.type for e in entries] == [TimelineEntryType.CREATED]


def test_create_event_rejects_end_before_start(env):
    with pytest.raises(ValidationError):
        _draft(env, start="11:00", end="09:00")


def test_main_hall_scenario(env):
    env.event_repo.add(make_event(title="Event A"))

    with pytest.raises(VenueConflict):
        _draft(env, start="10:00", end="12:00")

    accepted = _draft(env, start="11:00", end="13:00")
    assert accepted.status == EventStatus.DRAFT


def test_check_venue_preview(env):
    booked = make_event(title="Event A")
    env.event_repo.add(booked)

    response = env.booking.check_venue(
        VenueCheckRequest(location="Main Hall", date=DAY, start_time=t("10:00"), end_time=t("12:00"))
    )
    assert response.conflict
    assert [c.title for c in response.conflicting_events] == ["Event A"]
    assert response.conflicting_events[0].duration == "2h 0m"

    response = env.booking.check_venue(
        VenueCheckRequest(
            location="Main Hall",
            date=DAY,
            start_time=t("10:00"),
            end_time=t("12:00"),
            exclude_event_id=booked.id,
        )
    )
    assert not response.conflict


def test_check_resources_is_a_soft_preview(env):
    env.event_repo.add(
        make_event(
            location="Room 1",
            start_time=t("09:00"),
            end_time=t("10:00"),
            tagged_departments=["PICTO"],
            department_requirements={"PICTO": [selection("Projector", 2, env.projector.id)]},
        )
    )
    response = env.booking.check_resources(
        ResourceCheckRequest(
            date=DAY,
            start_time=t("09:30"),
            end_time=t("10:30"),
            department="PICTO",
            selections=[selection("Projector", 2, env.projector.id)],
        )
    )
    assert not response.ok
    assert response.warnings == ["Projector: requested 2, only 1 available"]
    assert response.checks[0].has_conflict


def test_save_requirements_fails_fast(env):
    env.event_repo.add(
        make_event(
            location="Room 1",
            tagged_departments=["PICTO"],
            department_requirements={"PICTO": [selection("Projector", 2, env.projector.id)]},
        )
    )
    event = _draft(env, location="Room 2", start="10:00", end="12:00")

    with pytest.raises(ResourceOverAllocation):
        _with_projectors(env, event, 2)
    assert env.event_repo.get(event.id).department_requirements == {}

    updated = _with_projectors(env, event, 1)
    assert updated.tagged_departments == ["PICTO"]
    assert updated.department_requirements["PICTO"][0].quantity == 1


def test_save_requirements_only_on_drafts(env):
    event = _draft(env)
    _with_projectors(env, event, 1)
    env.booking.submit(event.id)
    with pytest.raises(ValidationError):
        _with_projectors(env, event, 1)


def test_submit_requires_schedule_and_requirements(env):
    event = _draft(env)
    with pytest.raises(ValidationError):
        env.booking.submit(event.id)

    untimed = env.booking.create_event(
        CreateEventRequest(title="No time", location="Main Hall", start_date=DAY, end_date=DAY)
    )
    with pytest.raises(ValidationError):
        env.booking.submit(untimed.id)


def test_submit_rechecks_venue(env):
    first = _with_projectors(env, _draft(env, title="First"), 1)
    second = _with_projectors(env, _draft(env, title="Second", start="11:00", end="12:00"), 1)
    env.event_repo.save(second.model_copy(update={"start_time": t("10:00")}))

    env.booking.submit(first.id)
    with pytest.raises(VenueConflict):
        env.booking.submit(second.id)
    assert env.event_repo.get(second.id).status == EventStatus.DRAFT


def test_submit_rechecks_resources(env):
    first = _with_projectors(env, _draft(env, title="First", location="Room 1"), 2)
    second = _with_projectors(env, _draft(env, title="Second", location="Room 2"), 2)

    env.booking.submit(first.id)
    with pytest.raises(ResourceOverAllocation) as exc_info:
        env.booking.submit(second.id)
    assert exc_info.value.detail["shortfalls"][0]["available"] == 1


def test_submit_is_idempotent(env):
    event = _with_projectors(env, _draft(env), 1)
    env.booking.submit(event.id)
    assert env.booking.submit(event.id).status == EventStatus.SUBMITTED


def test_update_status_routes_through_state_machine(env):
    event = _with_projectors(env, _draft(env), 1)
    env.booking.update_status(event.id, EventStatus.SUBMITTED)
    approved = env.booking.update_status(event.id, EventStatus.APPROVED)
    assert approved.status == EventStatus.APPROVED
    with pytest.raises(InvalidTransition):
        env.booking.update_status(event.id, EventStatus.REJECTED)


def test_multi_day_submission_locks_every_day(env):
    event = _with_projectors(env, _draft(env, end_date=date(2024, 6, 2)), 1)
    keys = env.booking._lock_keys(event)
    assert venue_lock_key("Main Hall", date(2024, 6, 2)) in keys
    assert resource_lock_key("Projector", date(2024, 6, 2)) in keys


def test_lock_timeout_is_transient(env):
    event = _with_projectors(env, _draft(env), 1)
    with held_elsewhere(env.locks, venue_lock_key("Main Hall", DAY)):
        with pytest.raises(TransientStoreFailure) as exc_info:
            env.booking.submit(event.id)
    assert exc_info.value.retryable
    assert env.event_repo.get(event.id).status == EventStatus.DRAFT
    assert env.booking.submit(event.id).status == EventStatus.SUBMITTED


def test_concurrent_submissions_for_same_slot(env):
    env.locks.timeout_seconds = 5
    drafts = [_with_projectors(env, _draft(env, title=f"Request {i}"), 1) for i in range(6)]
    barrier = threading.Barrier(len(drafts))
    outcomes: dict[str, str] = {}

    def attempt(event_id):
        barrier.wait()
        try:
            env.booking.submit(event_id)
            outcomes[event_id] = "ok"
        except VenueConflict:
            outcomes[event_id] = "conflict"

    threads = [threading.Thread(target=attempt, args=(d.id,)) for d in drafts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(outcomes.values()) == ["conflict"] * 5 + ["ok"]
    assert len(env.event_repo.list_by_status(EventStatus.SUBMITTED)) == 1


def test_concurrent_claims_never_exceed_capacity(env):
    env.locks.timeout_seconds = 5
    drafts = [
        _with_projectors(env, _draft(env, title=f"Room {i}", location=f"Room {i}"), 1)
        for i in range(6)
    ]
    barrier = threading.Barrier(len(drafts))
    successes = []

    def attempt(event_id):
        barrier.wait()
        try:
            env.booking.submit(event_id)
            successes.append(event_id)
        except ResourceOverAllocation:
            pass

    threads = [threading.Thread(target=attempt, args=(d.id,)) for d in drafts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(successes) == 3
    claimed = env.allocation.claimed_quantity("Projector", DAY, t("09:00"), t("11:00"))
    assert claimed == 3


def test_overnight_request_is_rejected(env):
    with pytest.raises(ValidationError):
        _draft(env, start="20:00", end="08:00", end_date=date(2024, 6, 2))


def test_submit_waits_for_requirements_being_saved(env, monkeypatch):
    env.locks.timeout_seconds = 5
    event = _with_projectors(env, _draft(env), 1)

    original = env.allocation.validate_selections
    entered = threading.Event()
    proceed = threading.Event()
    calls = []

    def slow_validation(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            entered.set()
            proceed.wait(5)
        return original(*args, **kwargs)

    monkeypatch.setattr(env.allocation, "validate_selections", slow_validation)

    saver = threading.Thread(target=_with_projectors, args=(env, event, 2))
    saver.start()
    assert entered.wait(5)

    submitter = threading.Thread(target=env.booking.submit, args=(event.id,))
    submitter.start()
    submitter.join(timeout=0.2)
    assert submitter.is_alive()
    assert env.event_repo.get(event.id).status == EventStatus.DRAFT

    proceed.set()
    saver.join(timeout=5)
    submitter.join(timeout=5)

    stored = env.event_repo.get(event.id)
    assert stored.status == EventStatus.SUBMITTED
    assert stored.department_requirements["PICTO"][0].quantity == 2
    assert len(calls) == 2
