"""Service for stepping a recurrence rule and expanding a seed booking into
its concrete, non-conflicting occurrences."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from dateutil.relativedelta import relativedelta

from roombooking.domain.errors import RecurrenceLimitError
from roombooking.domain.models import (
    Booking,
    BookingStatus,
    Frequency,
    Occurrence,
    RecurrenceRule,
)
from roombooking.services.conflicts import find_conflicts
from roombooking.utils.logger import get_logger

if TYPE_CHECKING:
    from roombooking.repos.memory import BookingRepository

logger = get_logger(__name__)


@dataclass
class ExpansionResult:
    created: list[Booking] = field(default_factory=list)
    skipped: list[Occurrence] = field(default_factory=list)


def sunday_based_weekday(moment: datetime) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday, the convention rules use."""
    return moment.isoweekday() % 7


def step(cursor: datetime, rule: RecurrenceRule) -> datetime:
    """Advance ``cursor`` by one step of ``rule``.

    Monthly steps use calendar arithmetic: a day that does not exist in the
    target month clamps to its last day (Jan 31 -> Feb 29 in a leap year).
    """
    if rule.frequency == Frequency.DAILY:
        return cursor + timedelta(days=rule.interval)
    if rule.frequency == Frequency.WEEKLY:
        return cursor + timedelta(weeks=rule.interval)
    return cursor + relativedelta(months=rule.interval)


def iter_stepped_dates(seed_start: datetime, rule: RecurrenceRule) -> Iterator[datetime]:
    """Yield every stepped cursor up to and including ``rule.end_date``.

    The seed start itself is not yielded; the first cursor past the end date
    stops the generator and is never produced.
    """
    cursor = seed_start
    while True:
        cursor = step(cursor, rule)
        if cursor > rule.end_date:
            return
        yield cursor


def iter_occurrence_starts(
    seed_start: datetime, rule: RecurrenceRule
) -> Iterator[datetime]:
    """Stepped cursors that pass the weekday filter.

    The filter applies only to weekly rules with ``days_of_week`` set. A
    stepped date on another weekday is dropped; the next candidate is the
    next step, other days of that week are not tried.
    """
    days = set(rule.days_of_week) if rule.frequency == Frequency.WEEKLY else set()
    for cursor in iter_stepped_dates(seed_start, rule):
        if days and sunday_based_weekday(cursor) not in days:
            continue
        yield cursor


def iter_occurrences(seed: Booking, rule: RecurrenceRule) -> Iterator[Occurrence]:
    duration = seed.end_time - seed.start_time
    for start in iter_occurrence_starts(seed.start_time, rule):
        yield Occurrence(start_time=start, end_time=start + duration)


def count_occurrences(seed_start: datetime, rule: RecurrenceRule, limit: int) -> int:
    """Count stepped candidates, raising once ``limit`` is exceeded."""
    count = 0
    for _ in iter_stepped_dates(seed_start, rule):
        count += 1
        if count > limit:
            raise RecurrenceLimitError(
                f"Recurrence would generate more than {limit} occurrences",
                limit=limit,
                end_date=rule.end_date.isoformat(),
            )
    return count


def expand_recurrence(
    seed: Booking, rule: RecurrenceRule, bookings: BookingRepository
) -> ExpansionResult:
    """Materialize the occurrences of ``seed`` that do not collide with anything.

    Each occurrence is checked against the room's active bookings in the
    store and against occurrences already accepted in this expansion. A
    colliding occurrence is skipped, not treated as an error. Survivors are
    stored in one batch linked to the seed via ``parent_booking_id``.
    """
    result = ExpansionResult()

    for occurrence in iter_occurrences(seed, rule):
        clashes = bookings.find_overlapping(
            seed.room_id, occurrence.start_time, occurrence.end_time
        ) or find_conflicts(occurrence.start_time, occurrence.end_time, result.created)
        if clashes:
            logger.info(
                "Skipping occurrence %s of series %s: overlaps %s",
                occurrence.start_time.isoformat(),
                seed.id,
                ", ".join(b.id for b in clashes),
            )
            result.skipped.append(occurrence)
            continue

        result.created.append(
            Booking(
                room_id=seed.room_id,
                owner_id=seed.owner_id,
                title=seed.title,
                description=seed.description,
                attendees=seed.attendees,
                start_time=occurrence.start_time,
                end_time=occurrence.end_time,
                status=BookingStatus.ACTIVE,
                is_recurring=True,
                parent_booking_id=seed.id,
                created_at=seed.created_at,
                updated_at=seed.created_at,
            )
        )

    if result.created:
        bookings.add_many(result.created)

    logger.info(
        "Expanded series %s: %d created, %d skipped",
        seed.id,
        len(result.created),
        len(result.skipped),
    )
    return result
