"""Structural checks applied to a proposed booking before it is stored."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from roombooking.domain.errors import (
    BookingError,
    CapacityExceededError,
    ConflictError,
    DurationExceededError,
    InvalidIntervalError,
    NotFoundError,
    PastDatedError,
    ResourceUnavailableError,
)
from roombooking.domain.models import Booking, Room
from roombooking.services.conflicts import has_conflict

if TYPE_CHECKING:
    from roombooking.repos.memory import BookingRepository


@dataclass(frozen=True)
class ValidationResult:
    error: BookingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def check_capacity(attendees: int, room: Room) -> BookingError | None:
    if attendees > room.capacity:
        return CapacityExceededError(
            f"Room capacity is {room.capacity}, but {attendees} attendees requested",
            capacity=room.capacity,
            attendees=attendees,
        )
    return None


def check_interval(
    start_time: datetime, end_time: datetime, now: datetime, max_duration: timedelta
) -> BookingError | None:
    """Ordering, non-past and duration checks, in that order."""
    if start_time >= end_time:
        return InvalidIntervalError(
            "End time must be after start time",
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )
    if start_time < now:
        return PastDatedError(
            "Cannot book a room in the past",
            start_time=start_time.isoformat(),
            now=now.isoformat(),
        )
    if end_time - start_time > max_duration:
        return DurationExceededError(
            f"Booking duration cannot exceed {max_duration}",
            max_seconds=int(max_duration.total_seconds()),
        )
    return None


def validate_booking(
    candidate: Booking,
    room: Room | None,
    now: datetime,
    bookings: BookingRepository,
    max_duration: timedelta,
    is_edit: bool = False,
) -> ValidationResult:
    """Run every booking rule against ``candidate``; the first failure wins.

    Order: room exists, room available, capacity, interval ordering, not in
    the past, duration bound, and finally the conflict check. For an edit the
    conflict check ignores the candidate's own stored slot.
    """
    if room is None:
        return ValidationResult(
            NotFoundError("Room not found", room_id=candidate.room_id)
        )
    if not room.is_available:
        return ValidationResult(
            ResourceUnavailableError("Room is not available", room_id=room.id)
        )

    error = check_capacity(candidate.attendees, room) or check_interval(
        candidate.start_time, candidate.end_time, now, max_duration
    )
    if error is not None:
        return ValidationResult(error)

    if has_conflict(
        bookings,
        room.id,
        candidate.start_time,
        candidate.end_time,
        exclude_booking_id=candidate.id if is_edit else None,
    ):
        return ValidationResult(
            ConflictError(
                "Room is already booked for this time slot",
                room_id=room.id,
                start_time=candidate.start_time.isoformat(),
                end_time=candidate.end_time.isoformat(),
            )
        )
    return ValidationResult()
