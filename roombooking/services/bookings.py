"""Booking operations: create, edit, cancel, delete and the read views.

``BookingService`` ties the validator, the recurrence expander and the
series manager to the repositories and publishes a domain event after each
successful change. Time comes from an injected clock so callers and tests
control what "now" is.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone

from roombooking.domain.bus import EventBus
from roombooking.domain.errors import (
    BookingNotActiveError,
    ForbiddenError,
    NotFoundError,
    ResourceUnavailableError,
    StoreError,
)
from roombooking.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingDeleted,
    BookingUpdated,
    SeriesExpanded,
)
from roombooking.domain.models import (
    Booking,
    BookingCreatedResponse,
    BookingStatus,
    CancellationResult,
    CreateBookingRequest,
    RoomAvailability,
    SeriesView,
    UpdateBookingRequest,
    as_utc,
    utcnow,
)
from roombooking.repos.memory import BookingRepository, RoomRepository
from roombooking.services.recurrence import (
    ExpansionResult,
    count_occurrences,
    expand_recurrence,
)
from roombooking.services.series import cancel, series_members
from roombooking.services.validation import check_capacity, validate_booking
from roombooking.utils.config import Settings, get_settings
from roombooking.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class BookingService:
    def __init__(
        self,
        room_repo: RoomRepository,
        booking_repo: BookingRepository,
        bus: EventBus,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.rooms = room_repo
        self.bookings = booking_repo
        self.bus = bus
        self.settings = settings or get_settings()
        self.clock = clock

    def now(self) -> datetime:
        return as_utc(self.clock())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_booking(
        self, request: CreateBookingRequest, requester: str
    ) -> BookingCreatedResponse:
        """Validate and store a booking, expanding its series if it recurs.

        The room lock spans validation, the seed insert and the expansion, so
        no other write on the room can slip in between check and insert. If
        the occurrences cannot be stored the seed is removed again, so a
        failed create leaves nothing behind.
        """
        now = self.now()
        rule = request.recurrence_rule
        booking = Booking(
            room_id=request.room_id,
            owner_id=requester,
            title=request.title,
            description=request.description,
            attendees=request.attendees,
            start_time=request.start_time,
            end_time=request.end_time,
            is_recurring=rule is not None,
            recurrence_rule=rule,
            created_at=now,
            updated_at=now,
        )
        room = self.rooms.get(request.room_id)
        if room is None:
            raise NotFoundError("Room not found", room_id=request.room_id)

        with self.bookings.room_lock(request.room_id):
            result = validate_booking(
                booking, room, now, self.bookings, self.settings.max_booking_duration
            )
            if not result.ok:
                logger.info(
                    "Rejected booking on room %s for %s: %s",
                    request.room_id,
                    requester,
                    result.error.code,
                )
            result.raise_for_error()

            if rule is not None:
                count_occurrences(
                    booking.start_time, rule, self.settings.max_recurrence_occurrences
                )

            self.bookings.add(booking)
            try:
                expansion = (
                    expand_recurrence(booking, rule, self.bookings)
                    if rule is not None
                    else ExpansionResult()
                )
            except StoreError as exc:
                self._discard_series(booking.id)
                logger.error(
                    "Storing series of %s failed, seed rolled back: %s",
                    booking.id,
                    exc.message,
                )
                raise StoreError(
                    f"Series could not be stored: {exc.message}"
                ) from exc

        self.bus.publish(BookingCreated(booking_id=booking.id, requester=requester))
        if rule is not None:
            self.bus.publish(
                SeriesExpanded(
                    booking_id=booking.id,
                    created_booking_ids=[b.id for b in expansion.created],
                    skipped_occurrences=expansion.skipped,
                )
            )

        return BookingCreatedResponse(
            booking=booking,
            series_booking_ids=[b.id for b in expansion.created],
            skipped_occurrences=expansion.skipped,
        )

    def update_booking(
        self, booking_id: str, request: UpdateBookingRequest, requester: str
    ) -> Booking:
        booking = self._get_owned(booking_id, requester)
        if booking.status != BookingStatus.ACTIVE:
            raise BookingNotActiveError(
                f"Booking is {booking.status} and cannot be edited",
                booking_id=booking.id,
                status=str(booking.status),
            )

        changes = request.model_dump(exclude_none=True)
        if not changes:
            return booking

        now = self.now()
        candidate = booking.model_copy(update=changes)
        interval_changed = (
            candidate.start_time != booking.start_time
            or candidate.end_time != booking.end_time
        )

        with self.bookings.room_lock(booking.room_id):
            room = self.rooms.get(booking.room_id)
            if interval_changed:
                validate_booking(
                    candidate,
                    room,
                    now,
                    self.bookings,
                    self.settings.max_booking_duration,
                    is_edit=True,
                ).raise_for_error()
            elif "attendees" in changes:
                if room is None:
                    raise NotFoundError("Room not found", room_id=booking.room_id)
                if not room.is_available:
                    raise ResourceUnavailableError(
                        "Room is not available", room_id=room.id
                    )
                error = check_capacity(candidate.attendees, room)
                if error is not None:
                    raise error

            for name, value in changes.items():
                setattr(booking, name, value)
            booking.updated_at = now

        self.bus.publish(
            BookingUpdated(
                booking_id=booking.id,
                changes=request.model_dump(mode="json", exclude_none=True),
            )
        )
        return booking

    def cancel_booking(
        self, booking_id: str, requester: str, cascade: bool = False
    ) -> CancellationResult:
        booking = self._get_owned(booking_id, requester)
        try:
            result = cancel(self.bookings, booking, cascade, self.now())
        except StoreError as exc:
            logger.error(
                "Cancellation of %s stopped part way; %d sibling(s) cancelled: %s",
                booking.id,
                len(exc.applied_ids),
                exc.message,
            )
            if booking.status == BookingStatus.CANCELLED:
                self._publish_cancellations(booking.id, exc.applied_ids)
            raise

        logger.info(
            "Booking %s cancelled (cascade=%s, siblings=%d)",
            booking.id,
            cascade,
            len(result.cascaded_booking_ids),
        )
        self._publish_cancellations(booking.id, result.cascaded_booking_ids)
        return result

    def delete_booking(self, booking_id: str, requester: str) -> None:
        booking = self._get_owned(booking_id, requester)
        self.bookings.delete(booking.id)
        self.bus.publish(BookingDeleted(booking_id=booking.id, requester=requester))

    def complete_elapsed(self) -> list[str]:
        """Mark active bookings whose end has passed as completed."""
        now = self.now()
        elapsed = self.bookings.filter(
            lambda b: b.status == BookingStatus.ACTIVE and b.end_time <= now
        )
        completed = self.bookings.update_status_bulk(
            [b.id for b in elapsed], BookingStatus.COMPLETED, now
        )
        for booking_id in completed:
            self.bus.publish(BookingCompleted(booking_id=booking_id))
        return completed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str, requester: str) -> Booking:
        return self._get_owned(booking_id, requester)

    def list_bookings(
        self,
        room_id: str | None = None,
        status: BookingStatus | None = None,
        on: date | None = None,
    ) -> list[Booking]:
        bounds = _day_bounds(on) if on is not None else None
        return self.bookings.filter(
            lambda b: (room_id is None or b.room_id == room_id)
            and (status is None or b.status == status)
            and (
                bounds is None
                or (b.start_time >= bounds[0] and b.end_time <= bounds[1])
            )
        )

    def list_my_bookings(
        self,
        requester: str,
        status: BookingStatus | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Booking]:
        start_date = as_utc(start_date) if start_date is not None else None
        end_date = as_utc(end_date) if end_date is not None else None
        return [
            b
            for b in self.bookings.list_for_owner(requester)
            if (status is None or b.status == status)
            and (start_date is None or b.start_time >= start_date)
            and (end_date is None or b.start_time <= end_date)
        ]

    def get_series(self, booking_id: str, requester: str) -> SeriesView:
        booking = self._get_owned(booking_id, requester)
        seed, *occurrences = series_members(self.bookings, booking)
        return SeriesView(seed=seed, occurrences=occurrences)

    def room_availability(self, room_id: str, day: date) -> RoomAvailability:
        if self.rooms.get(room_id) is None:
            raise NotFoundError("Room not found", room_id=room_id)
        return RoomAvailability(
            room_id=room_id,
            day=day,
            bookings=self.list_bookings(
                room_id=room_id, status=BookingStatus.ACTIVE, on=day
            ),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_owned(self, booking_id: str, requester: str) -> Booking:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        if booking.owner_id != requester:
            raise ForbiddenError("Access denied", booking_id=booking_id)
        return booking

    def _discard_series(self, seed_id: str) -> None:
        for child in self.bookings.list_children(seed_id):
            self.bookings.delete(child.id)
        self.bookings.delete(seed_id)

    def _publish_cancellations(self, booking_id: str, cascaded_ids: list[str]) -> None:
        self.bus.publish(BookingCancelled(booking_id=booking_id))
        for sibling_id in cascaded_ids:
            self.bus.publish(
                BookingCancelled(booking_id=sibling_id, cascaded_from=booking_id)
            )
