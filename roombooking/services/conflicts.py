"""Service for detecting overlapping bookings on a room."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from roombooking.domain.models import Booking

if TYPE_CHECKING:
    from roombooking.repos.memory import BookingRepository


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open overlap test for ``[start_a, end_a)`` and ``[start_b, end_b)``."""
    return start_a < end_b and start_b < end_a


def find_conflicts(
    new_start: datetime,
    new_end: datetime,
    existing_bookings: Iterable[Booking],
) -> list[Booking]:
    """Return existing bookings that overlap with the given time range.

    Overlap rule: conflict if new_start < existing.end_time AND existing.start_time < new_end.
    Exact boundary touches (end == start) are NOT considered conflicts.
    """
    return [
        booking
        for booking in existing_bookings
        if overlaps(new_start, new_end, booking.start_time, booking.end_time)
    ]


def has_conflict(
    bookings: BookingRepository,
    room_id: str,
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: str | None = None,
) -> bool:
    """True if an active booking on ``room_id`` overlaps ``[start_time, end_time)``.

    ``exclude_booking_id`` leaves one booking out, so an edit is not checked
    against its own current slot.
    """
    return bool(
        bookings.find_overlapping(
            room_id, start_time, end_time, exclude_booking_id=exclude_booking_id
        )
    )
