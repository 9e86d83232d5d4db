"""FastAPI application: entry point for the event booking service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.domain.bus import EventBus
from app.domain.errors import BookingError
from app.domain.handlers import HandlerRegistry
from app.domain.models import (
    BulkApplyResult,
    BulkAvailabilityRequest,
    CreateEventRequest,
    DayAvailabilityRequest,
    DeleteDatesRequest,
    Event,
    EventStatus,
    MonthSummary,
    ResourceAvailabilityRecord,
    ResourceCheckRequest,
    ResourceCheckResponse,
    SaveRequirementsRequest,
    SlotOption,
    StatusUpdateRequest,
    SweepResult,
    TimelineEntry,
    VenueCheckRequest,
    VenueCheckResponse,
)
from app.repos.memory import (
    AvailabilityRepository,
    EventRepository,
    TimelineRepository,
    create_department_repository,
)
from app.services.allocation import ResourceAllocationCalculator
from app.services.availability import BulkAvailabilityMutator
from app.services.booking import BookingService
from app.services.lifecycle import EventStatusMachine, as_local_naive
from app.services.locks import KeyedLocks
from app.services.scheduler import PeriodicTask
from app.services.venues import VenueAvailabilityResolver
from app.utils.config import get_settings
from app.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
event_repo = EventRepository()
department_repo = create_department_repository()
availability_repo = AvailabilityRepository()
timeline_repo = TimelineRepository()
locks = KeyedLocks(timeout_seconds=settings.lock_timeout_seconds)

handler_registry = HandlerRegistry(bus=event_bus, timeline_repo=timeline_repo)

venues = VenueAvailabilityResolver(event_repo, settings)
allocation = ResourceAllocationCalculator(event_repo, department_repo, availability_repo)
status_machine = EventStatusMachine(event_repo, event_bus, locks)
booking_service = BookingService(
    event_repo=event_repo,
    department_repo=department_repo,
    venues=venues,
    allocation=allocation,
    status_machine=status_machine,
    bus=event_bus,
    locks=locks,
)
availability_mutator = BulkAvailabilityMutator(
    department_repo, availability_repo, event_repo, event_bus
)
completion_sweep = PeriodicTask(
    name="auto-complete-sweep",
    interval_seconds=settings.sweep_interval_seconds,
    action=status_machine.auto_complete_expired,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.sweep_enabled:
        completion_sweep.start()
    yield
    completion_sweep.stop(timeout=settings.lock_timeout_seconds)


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)


@app.exception_handler(BookingError)
def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


# ── Booking checks ────────────────────────────────────────────────────


@app.post("/bookings/check-venue", response_model=VenueCheckResponse)
def check_venue(payload: VenueCheckRequest) -> VenueCheckResponse:
    """Report events already holding the venue during the proposed window."""
    return booking_service.check_venue(payload)


@app.post("/bookings/check-resource", response_model=ResourceCheckResponse)
def check_resource(payload: ResourceCheckRequest) -> ResourceCheckResponse:
    """Preview remaining quantities; over-allocation is returned as warnings."""
    return booking_service.check_resources(payload)


@app.get("/venues/slots", response_model=list[SlotOption])
def venue_slots(location: str, date: date) -> list[SlotOption]:
    """Selectable start/end times for a venue and day, with booked ones blocked."""
    return venues.slot_options(date, location)


@app.get("/requirements/in-use")
def requirements_in_use(date: date, slot: time) -> dict:
    """Requirements claimed by events covering the given time slot."""
    return {
        "slot": slot.strftime("%H:%M"),
        "requirements": allocation.requirements_in_use_at(date, slot),
    }


# ── Events ────────────────────────────────────────────────────────────


@app.post("/events", response_model=Event, status_code=201)
def create_event(payload: CreateEventRequest) -> Event:
    """Create a draft booking request; a venue conflict rejects it outright."""
    return booking_service.create_event(payload)


@app.get("/events", response_model=list[Event])
def list_events(status: EventStatus | None = None) -> list[Event]:
    if status is None:
        return event_repo.list_all()
    return event_repo.list_by_status(status)


@app.get("/events/{event_id}", response_model=Event)
def get_event(event_id: str) -> Event:
    return booking_service.get_event(event_id)


@app.get("/events/{event_id}/timeline", response_model=list[TimelineEntry])
def get_event_timeline(event_id: str) -> list[TimelineEntry]:
    booking_service.get_event(event_id)
    return timeline_repo.list_for_event(event_id)


@app.put("/events/{event_id}/requirements/{department}", response_model=Event)
def save_requirements(event_id: str, department: str, payload: SaveRequirementsRequest) -> Event:
    """Save one department's selections; rejected if any quantity exceeds what remains."""
    return booking_service.save_requirements(event_id, department, payload.selections)


@app.post("/events/{event_id}/submit", response_model=Event)
def submit_event(event_id: str) -> Event:
    return booking_service.submit(event_id)


@app.patch("/events/{event_id}/status", response_model=Event)
def update_event_status(event_id: str, payload: StatusUpdateRequest) -> Event:
    return booking_service.update_status(event_id, payload.status, payload.reason)


@app.post("/tick", response_model=SweepResult)
def tick(now: datetime | None = None) -> SweepResult:
    """Run the auto-completion sweep.

    Pass *now* as a query param to control the simulated clock.
    Defaults to the local wall clock when omitted.
    """
    current_time = as_local_naive(now or datetime.now())
    completed = status_machine.auto_complete_expired(current_time)
    return SweepResult(time=current_time, completed_event_ids=completed)


# ── Availability calendar ─────────────────────────────────────────────


@app.post("/availability/bulk", response_model=BulkApplyResult)
def bulk_availability(payload: BulkAvailabilityRequest) -> BulkApplyResult:
    return availability_mutator.bulk_apply(
        payload.department, payload.month, payload.operation, today=payload.today
    )


@app.post("/availability/delete-dates", response_model=BulkApplyResult)
def delete_availability_dates(payload: DeleteDatesRequest) -> BulkApplyResult:
    return availability_mutator.delete_dates(
        payload.department, payload.dates, today=payload.today
    )


@app.put(
    "/availability/{department}/{day}",
    response_model=list[ResourceAvailabilityRecord],
)
def save_day_availability(
    department: str, day: date, payload: DayAvailabilityRequest
) -> list[ResourceAvailabilityRecord]:
    return availability_mutator.save_day(department, day, payload.entries)


@app.get("/availability/{department}", response_model=list[ResourceAvailabilityRecord])
def list_availability(department: str, month: date) -> list[ResourceAvailabilityRecord]:
    return availability_mutator.list_month(department, month)


@app.get("/availability/{department}/summary", response_model=MonthSummary)
def availability_summary(department: str, month: date) -> MonthSummary:
    return availability_mutator.month_summary(department, month)


@app.get("/availability/{department}/bookings")
def department_bookings(department: str, month: date) -> dict[str, list[str]]:
    bookings = availability_mutator.department_bookings(department, month)
    return {day.isoformat(): titles for day, titles in bookings.items()}
