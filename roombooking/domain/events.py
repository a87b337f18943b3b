"""Domain events emitted as bookings move through their lifecycle."""

from __future__ import annotations

from pydantic import BaseModel

from roombooking.domain.models import Occurrence


class BookingCreated(BaseModel):
    """Fired when a booking requested by a user is stored."""

    booking_id: str
    requester: str


class SeriesExpanded(BaseModel):
    """Fired after a seed's occurrences have been generated."""

    booking_id: str
    created_booking_ids: list[str]
    skipped_occurrences: list[Occurrence]


class BookingUpdated(BaseModel):
    booking_id: str
    changes: dict


class BookingCancelled(BaseModel):
    """Fired once per cancelled booking; ``cascaded_from`` marks cascade victims."""

    booking_id: str
    cascaded_from: str | None = None


class BookingCompleted(BaseModel):
    booking_id: str


class BookingDeleted(BaseModel):
    booking_id: str
    requester: str
