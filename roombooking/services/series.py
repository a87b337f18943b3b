"""Series lookups and cancellation, including cascades to sibling occurrences."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from roombooking.domain.errors import AlreadyCancelledError, BookingNotActiveError
from roombooking.domain.models import Booking, BookingStatus, CancellationResult

if TYPE_CHECKING:
    from roombooking.repos.memory import BookingRepository


def seed_of(bookings: BookingRepository, booking: Booking) -> Booking:
    """Return the seed of ``booking``'s series (the booking itself for a seed)."""
    if booking.parent_booking_id is None:
        return booking
    return bookings.get(booking.parent_booking_id) or booking


def series_members(bookings: BookingRepository, booking: Booking) -> list[Booking]:
    """Seed first, then its generated occurrences ordered by start time."""
    seed = seed_of(bookings, booking)
    return [seed, *bookings.list_children(seed.id)]


def cascade_targets(
    bookings: BookingRepository, booking: Booking, now: datetime
) -> list[Booking]:
    """Active, not-yet-started siblings a cascading cancel should reach.

    Siblings are bookings whose parent is ``booking`` itself, or whose parent
    equals ``booking``'s parent. A missing parent never matches.
    """
    parents = {booking.id}
    if booking.parent_booking_id is not None:
        parents.add(booking.parent_booking_id)

    return bookings.filter(
        lambda b: b.id != booking.id
        and b.parent_booking_id in parents
        and b.status == BookingStatus.ACTIVE
        and b.start_time >= now
    )


def cancel(
    bookings: BookingRepository, booking: Booking, cascade: bool, now: datetime
) -> CancellationResult:
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelledError(
            "Booking is already cancelled", booking_id=booking.id
        )
    if booking.status != BookingStatus.ACTIVE:
        raise BookingNotActiveError(
            f"Booking is {booking.status} and cannot be cancelled",
            booking_id=booking.id,
            status=str(booking.status),
        )

    bookings.update_status(booking.id, BookingStatus.CANCELLED, now)

    cascaded: list[str] = []
    if cascade and booking.is_recurring:
        targets = cascade_targets(bookings, booking, now)
        cascaded = bookings.update_status_bulk(
            [t.id for t in targets], BookingStatus.CANCELLED, now
        )

    return CancellationResult(
        booking_id=booking.id,
        status=BookingStatus.CANCELLED,
        cascaded_booking_ids=cascaded,
    )
