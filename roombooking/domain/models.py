"""Domain models for the room booking engine."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class BookingStatus(StrEnum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Frequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Amenity(StrEnum):
    PROJECTOR = "projector"
    WHITEBOARD = "whiteboard"
    VIDEO_CONFERENCE = "video_conference"
    AUDIO_SYSTEM = "audio_system"
    WIFI = "wifi"
    AIR_CONDITIONING = "air_conditioning"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    SERIES_EXPANDED = "series_expanded"
    COMPLETED = "completed"
    DELETED = "deleted"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _required_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("title is required")
    return value


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Room(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    capacity: int = Field(ge=1)
    location: str = ""
    amenities: list[Amenity] = Field(default_factory=list)
    is_available: bool = True
    description: str = ""


class RecurrenceRule(BaseModel):
    frequency: Frequency = Frequency.WEEKLY
    interval: int = Field(default=1, ge=1)
    end_date: datetime
    # 0 = Sunday ... 6 = Saturday; only consulted for weekly rules.
    days_of_week: list[int] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("end_date")
    @classmethod
    def _end_date_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("days_of_week")
    @classmethod
    def _days_in_range(cls, value: list[int]) -> list[int]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError("days_of_week entries must be between 0 and 6")
        return sorted(set(value))


class Booking(BaseModel):
    id: str = Field(default_factory=_new_id)
    room_id: str
    owner_id: str
    title: str = Field(min_length=1)
    description: str = ""
    attendees: int = Field(ge=1)
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.ACTIVE
    is_recurring: bool = False
    recurrence_rule: RecurrenceRule | None = None
    parent_booking_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("start_time", "end_time")
    @classmethod
    def _times_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


class Occurrence(BaseModel):
    """One concrete ``[start_time, end_time)`` slot produced by expansion."""

    start_time: datetime
    end_time: datetime


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    booking_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CreateBookingRequest(BaseModel):
    room_id: str
    title: str = Field(min_length=1)
    description: str = ""
    start_time: datetime
    end_time: datetime
    attendees: int = Field(ge=1)
    recurrence_rule: RecurrenceRule | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        return _required_title(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _times_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class UpdateBookingRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    attendees: int | None = Field(default=None, ge=1)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str | None) -> str | None:
        return _required_title(value) if value is not None else None

    @field_validator("start_time", "end_time")
    @classmethod
    def _times_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class CancelBookingRequest(BaseModel):
    cascade: bool = False


class BookingCreatedResponse(BaseModel):
    booking: Booking
    series_booking_ids: list[str] = Field(default_factory=list)
    skipped_occurrences: list[Occurrence] = Field(default_factory=list)


class CancellationResult(BaseModel):
    booking_id: str
    status: BookingStatus
    cascaded_booking_ids: list[str] = Field(default_factory=list)


class SeriesView(BaseModel):
    seed: Booking
    occurrences: list[Booking] = Field(default_factory=list)


class RoomAvailability(BaseModel):
    room_id: str
    day: date
    bookings: list[Booking] = Field(default_factory=list)
