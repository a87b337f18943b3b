"""FastAPI application: entry point for the room booking service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from roombooking.domain.bus import EventBus
from roombooking.domain.errors import BookingError, StoreError
from roombooking.domain.handlers import HandlerRegistry
from roombooking.domain.models import (
    Booking,
    BookingCreatedResponse,
    BookingStatus,
    CancelBookingRequest,
    CancellationResult,
    CreateBookingRequest,
    RoomAvailability,
    SeriesView,
    TimelineEntry,
    UpdateBookingRequest,
)
from roombooking.repos.memory import (
    BookingRepository,
    RoomRepository,
    TimelineRepository,
    seed_rooms,
)
from roombooking.services.bookings import BookingService
from roombooking.utils.config import get_settings
from roombooking.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
room_repo = RoomRepository()
booking_repo = BookingRepository()
timeline_repo = TimelineRepository()

handler_registry = HandlerRegistry(bus=event_bus, timeline_repo=timeline_repo)
booking_service = BookingService(
    room_repo=room_repo,
    booking_repo=booking_repo,
    bus=event_bus,
    settings=settings,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.seed_demo_data and not room_repo.list_all():
        seed_rooms(room_repo)
        logger.info("Seeded %d demo rooms", len(room_repo.list_all()))
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)


@app.exception_handler(BookingError)
async def _booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(StoreError)
async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict:
    return {
        "message": "Server is running",
        "environment": settings.environment,
        "version": settings.app_version,
    }


@app.post("/bookings", response_model=BookingCreatedResponse, status_code=201)
def create_booking(
    payload: CreateBookingRequest, x_user_id: str = Header(...)
) -> BookingCreatedResponse:
    """Create a booking, plus its occurrences when a recurrence rule is given."""
    return booking_service.create_booking(payload, requester=x_user_id)


@app.get("/bookings", response_model=list[Booking])
def list_bookings(
    room_id: str | None = None,
    status: BookingStatus | None = None,
    on: date | None = Query(default=None, alias="date"),
) -> list[Booking]:
    """Return all bookings, optionally narrowed to a room, status, or UTC day."""
    return booking_service.list_bookings(room_id=room_id, status=status, on=on)


@app.get("/bookings/mine", response_model=list[Booking])
def list_my_bookings(
    x_user_id: str = Header(...),
    status: BookingStatus | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[Booking]:
    """Return the requester's bookings ordered by start time."""
    return booking_service.list_my_bookings(
        x_user_id, status=status, start_date=start_date, end_date=end_date
    )


@app.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str, x_user_id: str = Header(...)) -> Booking:
    return booking_service.get_booking(booking_id, requester=x_user_id)


@app.put("/bookings/{booking_id}", response_model=Booking)
def update_booking(
    booking_id: str, payload: UpdateBookingRequest, x_user_id: str = Header(...)
) -> Booking:
    """Edit the interval, attendees, title or description of one booking."""
    return booking_service.update_booking(booking_id, payload, requester=x_user_id)


@app.patch("/bookings/{booking_id}/cancel", response_model=CancellationResult)
def cancel_booking(
    booking_id: str,
    payload: CancelBookingRequest | None = None,
    x_user_id: str = Header(...),
) -> CancellationResult:
    """Cancel a booking; with ``cascade`` also its future series siblings."""
    cascade = payload.cascade if payload is not None else False
    return booking_service.cancel_booking(booking_id, x_user_id, cascade=cascade)


@app.delete("/bookings/{booking_id}")
def delete_booking(booking_id: str, x_user_id: str = Header(...)) -> dict:
    booking_service.delete_booking(booking_id, requester=x_user_id)
    return {"status": "deleted"}


@app.get("/bookings/{booking_id}/series", response_model=SeriesView)
def get_series(booking_id: str, x_user_id: str = Header(...)) -> SeriesView:
    return booking_service.get_series(booking_id, requester=x_user_id)


@app.get("/bookings/{booking_id}/timeline", response_model=list[TimelineEntry])
def get_timeline(booking_id: str, x_user_id: str = Header(...)) -> list[TimelineEntry]:
    booking_service.get_booking(booking_id, requester=x_user_id)
    return timeline_repo.list_for_booking(booking_id)


@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability)
def room_availability(
    room_id: str, on: date = Query(..., alias="date")
) -> RoomAvailability:
    """Active bookings on the room that fall within the given UTC day."""
    return booking_service.room_availability(room_id, on)


@app.post("/tick")
def tick() -> dict:
    """Complete every active booking whose end time has passed."""
    completed = booking_service.complete_elapsed()
    return {"time": booking_service.now().isoformat(), "completed": completed}
