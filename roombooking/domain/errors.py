"""Errors raised by the booking engine.

``BookingError`` subclasses describe a rule the request broke; each carries a
stable ``code`` and the HTTP status the API layer reports it with.
``StoreError`` is kept apart from them: it signals that the store itself
failed, not that the request was invalid.
"""

from __future__ import annotations

from typing import Any


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404


class ResourceUnavailableError(BookingError):
    code = "resource_unavailable"


class CapacityExceededError(BookingError):
    code = "capacity_exceeded"


class InvalidIntervalError(BookingError):
    code = "invalid_interval"


class PastDatedError(BookingError):
    code = "past_dated"


class DurationExceededError(BookingError):
    code = "duration_exceeded"


class ConflictError(BookingError):
    code = "conflict"
    status_code = 409


class AlreadyCancelledError(BookingError):
    code = "already_cancelled"


class BookingNotActiveError(BookingError):
    code = "not_active"
    status_code = 409


class ForbiddenError(BookingError):
    code = "forbidden"
    status_code = 403


class RecurrenceLimitError(BookingError):
    code = "recurrence_limit"


class StoreError(Exception):
    """The backing store failed; ``applied_ids`` lists writes that did land."""

    code = "store_error"
    status_code = 503

    def __init__(self, message: str, applied_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.applied_ids = list(applied_ids or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": {"applied_ids": self.applied_ids},
        }
