"""Tests for BookingService: create, edit, cancel and the read views."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from itertools import combinations

import pytest

from roombooking.domain.bus import EventBus
from roombooking.domain.errors import (
    AlreadyCancelledError,
    BookingError,
    BookingNotActiveError,
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidIntervalError,
    NotFoundError,
    RecurrenceLimitError,
    ResourceUnavailableError,
    StoreError,
)
from roombooking.domain.handlers import HandlerRegistry
from roombooking.domain.models import (
    BookingStatus,
    CreateBookingRequest,
    Frequency,
    RecurrenceRule,
    Room,
    TimelineEntryType,
    UpdateBookingRequest,
)
from roombooking.repos.memory import (
    BookingRepository,
    RoomRepository,
    TimelineRepository,
)
from roombooking.services.bookings import BookingService
from roombooking.utils.config import Settings

# Monday 08:00 UTC.
_NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _at(hour: int, minute: int = 0, days: int = 0) -> datetime:
    return _NOW.replace(hour=hour, minute=minute) + timedelta(days=days)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def env():
    """Fresh repos, bus, registry and a service on a controllable clock."""
    rooms = RoomRepository()
    rooms.add(Room(id="room-1", name="Atlas", capacity=10))
    rooms.add(Room(id="room-2", name="Borealis", capacity=4))
    rooms.add(Room(id="room-closed", name="Delta", capacity=6, is_available=False))

    bookings = BookingRepository()
    timeline = TimelineRepository()
    bus = EventBus()
    HandlerRegistry(bus=bus, timeline_repo=timeline)
    clock = _Clock(_NOW)
    service = BookingService(
        room_repo=rooms,
        booking_repo=bookings,
        bus=bus,
        settings=Settings(seed_demo_data=False, max_recurrence_occurrences=50),
        clock=clock,
    )

    class Env:
        pass

    e = Env()
    e.rooms = rooms
    e.bookings = bookings
    e.timeline = timeline
    e.clock = clock
    e.service = service
    return e


def _request(**overrides) -> CreateBookingRequest:
    defaults = dict(
        room_id="room-1",
        title="Planning",
        start_time=_at(9),
        end_time=_at(10),
        attendees=8,
    )
    defaults.update(overrides)
    return CreateBookingRequest(**defaults)


def _weekly_rule(weeks: int = 3, **overrides) -> RecurrenceRule:
    defaults = dict(
        frequency=Frequency.WEEKLY, interval=1, end_date=_at(9, days=7 * weeks)
    )
    defaults.update(overrides)
    return RecurrenceRule(**defaults)


def _assert_no_overlap(bookings: BookingRepository) -> None:
    active = bookings.filter(lambda b: b.status == BookingStatus.ACTIVE)
    for a, b in combinations(active, 2):
        if a.room_id == b.room_id:
            assert a.start_time >= b.end_time or b.start_time >= a.end_time, (a, b)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def test_create_then_overlapping_create_conflicts(env):
    created = env.service.create_booking(_request(), requester="alice")
    assert created.booking.status == BookingStatus.ACTIVE
    assert created.booking.owner_id == "alice"
    assert created.series_booking_ids == []

    with pytest.raises(ConflictError):
        env.service.create_booking(
            _request(start_time=_at(9, 30), end_time=_at(9, 45), attendees=2),
            requester="bob",
        )
    assert len(env.bookings.list_all()) == 1


def test_back_to_back_bookings_allowed(env):
    env.service.create_booking(_request(), requester="alice")
    env.service.create_booking(
        _request(start_time=_at(10), end_time=_at(11)), requester="bob"
    )
    assert len(env.bookings.list_all()) == 2


def test_end_before_start_is_invalid_interval(env):
    with pytest.raises(InvalidIntervalError):
        env.service.create_booking(
            _request(
                start_time=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
                end_time=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
            ),
            requester="alice",
        )


def test_unknown_and_unavailable_rooms(env):
    with pytest.raises(NotFoundError):
        env.service.create_booking(_request(room_id="nope"), requester="alice")
    with pytest.raises(ResourceUnavailableError):
        env.service.create_booking(_request(room_id="room-closed"), requester="alice")


def test_naive_datetimes_are_treated_as_utc(env):
    created = env.service.create_booking(
        _request(start_time=datetime(2026, 3, 2, 9, 0), end_time=datetime(2026, 3, 2, 10, 0)),
        requester="alice",
    )
    assert created.booking.start_time == _at(9)
    with pytest.raises(ConflictError):
        env.service.create_booking(_request(), requester="bob")


def test_weekly_series_creates_three_occurrences(env):
    created = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule()), requester="alice"
    )

    seed = created.booking
    assert seed.is_recurring is True
    assert seed.parent_booking_id is None
    assert len(created.series_booking_ids) == 3
    assert created.skipped_occurrences == []
    children = env.bookings.list_children(seed.id)
    assert [c.start_time for c in children] == [_at(9, days=d) for d in (7, 14, 21)]
    assert [c.id for c in children] == created.series_booking_ids


def test_series_reports_skipped_occurrences(env):
    env.service.create_booking(
        _request(start_time=_at(9, days=14), end_time=_at(10, days=14), attendees=2),
        requester="bob",
    )

    created = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule()), requester="alice"
    )

    assert len(created.series_booking_ids) == 2
    assert [o.start_time for o in created.skipped_occurrences] == [_at(9, days=14)]
    _assert_no_overlap(env.bookings)


def test_runaway_rule_rejected_before_anything_is_stored(env):
    rule = RecurrenceRule(frequency=Frequency.DAILY, end_date=_at(9, days=365))
    with pytest.raises(RecurrenceLimitError):
        env.service.create_booking(_request(recurrence_rule=rule), requester="alice")
    assert env.bookings.list_all() == []


def test_series_timeline_entries(env):
    created = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule(weeks=1)), requester="alice"
    )
    seed_entries = env.timeline.list_for_booking(created.booking.id)
    assert [e.type for e in seed_entries] == [
        TimelineEntryType.CREATED,
        TimelineEntryType.SERIES_EXPANDED,
    ]
    child_id = created.series_booking_ids[0]
    child_entries = env.timeline.list_for_booking(child_id)
    assert child_entries[0].payload == {"parent_booking_id": created.booking.id}


def test_concurrent_creates_for_same_slot_admit_one(env):
    def attempt(i: int) -> bool:
        try:
            env.service.create_booking(_request(attendees=1), requester=f"user-{i}")
        except ConflictError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(16)))

    assert outcomes.count(True) == 1
    assert len(env.bookings.list_all()) == 1


def test_store_failure_leaves_nothing_recorded(env):
    class BrokenRepository(BookingRepository):
        def add(self, booking):
            raise StoreError("insert refused")

    env.service.bookings = BrokenRepository()
    with pytest.raises(StoreError) as excinfo:
        env.service.create_booking(_request(), requester="alice")

    assert not isinstance(excinfo.value, BookingError)
    assert env.service.bookings.list_all() == []


def test_unknown_room_does_not_allocate_a_lock(env):
    for i in range(20):
        with pytest.raises(NotFoundError):
            env.service.create_booking(_request(room_id=f"ghost-{i}"), requester="alice")
    assert env.bookings._room_locks == {}


def test_series_store_failure_rolls_back_the_seed(env):
    class BatchRefusingRepository(BookingRepository):
        def add_many(self, bookings):
            raise StoreError("batch refused")

    env.service.bookings = BatchRefusingRepository()
    with pytest.raises(StoreError) as excinfo:
        env.service.create_booking(
            _request(recurrence_rule=_weekly_rule()), requester="alice"
        )

    assert excinfo.value.applied_ids == []
    assert env.service.bookings.list_all() == []
    assert env.timeline._entries == []

    env.service.bookings = env.bookings
    retried = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule()), requester="alice"
    )
    assert len(retried.series_booking_ids) == 3


def test_timestamps_follow_the_injected_clock(env):
    created = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule()), requester="alice"
    )
    for child in env.bookings.list_children(created.booking.id):
        assert child.created_at == _NOW
        assert child.updated_at == _NOW

    env.clock.now = _at(8, 30)
    env.service.cancel_booking(created.booking.id, "alice", cascade=True)
    assert created.booking.updated_at == _at(8, 30)
    for child in env.bookings.list_children(created.booking.id):
        assert child.updated_at == _at(8, 30)


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def test_update_can_overlap_its_own_old_slot(env):
    booking = env.service.create_booking(_request(), requester="alice").booking

    updated = env.service.update_booking(
        booking.id,
        UpdateBookingRequest(start_time=_at(9, 30), end_time=_at(10, 30)),
        requester="alice",
    )

    assert updated.start_time == _at(9, 30)
    assert env.bookings.get(booking.id).end_time == _at(10, 30)


def test_update_into_other_booking_conflicts_and_changes_nothing(env):
    env.service.create_booking(_request(), requester="alice")
    other = env.service.create_booking(
        _request(start_time=_at(11), end_time=_at(12)), requester="bob"
    ).booking

    with pytest.raises(ConflictError):
        env.service.update_booking(
            other.id, UpdateBookingRequest(start_time=_at(9, 30)), requester="bob"
        )
    assert other.start_time == _at(11)


def test_update_attendees_checks_capacity(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    with pytest.raises(CapacityExceededError):
        env.service.update_booking(
            booking.id, UpdateBookingRequest(attendees=11), requester="alice"
        )
    assert booking.attendees == 8


def test_attendee_edit_rejected_once_room_is_closed(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    env.rooms.get("room-1").is_available = False

    with pytest.raises(ResourceUnavailableError):
        env.service.update_booking(
            booking.id, UpdateBookingRequest(attendees=3), requester="alice"
        )
    assert booking.attendees == 8


def test_attendee_edit_allowed_while_meeting_in_progress(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    env.clock.now = _at(9, 30)

    updated = env.service.update_booking(
        booking.id, UpdateBookingRequest(attendees=3, title="Retro"), requester="alice"
    )

    assert updated.attendees == 3
    assert updated.title == "Retro"
    entries = env.timeline.list_for_booking(booking.id)
    assert entries[-1].type == TimelineEntryType.UPDATED
    assert entries[-1].payload == {"title": "Retro", "attendees": 3}


def test_update_by_someone_else_is_forbidden(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    with pytest.raises(ForbiddenError):
        env.service.update_booking(
            booking.id, UpdateBookingRequest(title="Mine now"), requester="mallory"
        )


def test_cancelled_booking_cannot_be_edited(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    env.service.cancel_booking(booking.id, requester="alice")
    with pytest.raises(BookingNotActiveError):
        env.service.update_booking(
            booking.id, UpdateBookingRequest(title="Again"), requester="alice"
        )


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def test_cancel_twice_reports_already_cancelled(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    env.service.cancel_booking(booking.id, requester="alice")

    with pytest.raises(AlreadyCancelledError):
        env.service.cancel_booking(booking.id, requester="alice")
    assert booking.status == BookingStatus.CANCELLED


def test_cancel_frees_the_slot(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    env.service.cancel_booking(booking.id, requester="alice")
    env.service.create_booking(_request(), requester="bob")
    _assert_no_overlap(env.bookings)


def test_cancel_checks_ownership_first(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    with pytest.raises(ForbiddenError):
        env.service.cancel_booking(booking.id, requester="mallory")
    assert booking.status == BookingStatus.ACTIVE
    with pytest.raises(NotFoundError):
        env.service.cancel_booking("missing", requester="alice")


def test_cascade_cancel_leaves_elapsed_occurrences(env):
    created = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule()), requester="alice"
    )
    first_child, second_child, third_child = env.bookings.list_children(
        created.booking.id
    )
    env.clock.now = _at(12, days=7)

    result = env.service.cancel_booking(created.booking.id, "alice", cascade=True)

    assert result.cascaded_booking_ids == [second_child.id, third_child.id]
    assert first_child.status == BookingStatus.ACTIVE
    assert second_child.status == BookingStatus.CANCELLED
    assert third_child.status == BookingStatus.CANCELLED
    cascaded_entry = env.timeline.list_for_booking(third_child.id)[-1]
    assert cascaded_entry.type == TimelineEntryType.CANCELLED
    assert cascaded_entry.payload == {"cascaded_from": created.booking.id}


# ---------------------------------------------------------------------------
# Completion, deletion, queries
# ---------------------------------------------------------------------------


def test_complete_elapsed_marks_finished_bookings(env):
    early = env.service.create_booking(_request(), requester="alice").booking
    late = env.service.create_booking(
        _request(start_time=_at(15), end_time=_at(16)), requester="alice"
    ).booking
    env.clock.now = _at(10)

    assert env.service.complete_elapsed() == [early.id]
    assert early.status == BookingStatus.COMPLETED
    assert late.status == BookingStatus.ACTIVE
    with pytest.raises(BookingNotActiveError):
        env.service.cancel_booking(early.id, requester="alice")


def test_delete_booking(env):
    booking = env.service.create_booking(_request(), requester="alice").booking
    with pytest.raises(ForbiddenError):
        env.service.delete_booking(booking.id, requester="bob")
    env.service.delete_booking(booking.id, requester="alice")
    assert env.bookings.get(booking.id) is None
    assert env.timeline.list_for_booking(booking.id)[-1].type == TimelineEntryType.DELETED


def test_list_filters(env):
    env.service.create_booking(_request(), requester="alice")
    env.service.create_booking(
        _request(room_id="room-2", attendees=2, start_time=_at(9, days=1), end_time=_at(10, days=1)),
        requester="alice",
    )
    cancelled = env.service.create_booking(
        _request(start_time=_at(13), end_time=_at(14)), requester="bob"
    ).booking
    env.service.cancel_booking(cancelled.id, requester="bob")

    assert len(env.service.list_bookings()) == 3
    assert len(env.service.list_bookings(room_id="room-1")) == 2
    assert env.service.list_bookings(status=BookingStatus.CANCELLED) == [cancelled]
    assert len(env.service.list_bookings(on=date(2026, 3, 3))) == 1

    mine = env.service.list_my_bookings("alice")
    assert [b.room_id for b in mine] == ["room-1", "room-2"]
    assert len(env.service.list_my_bookings("alice", start_date=_at(0, days=1))) == 1
    assert len(env.service.list_my_bookings("alice", end_date=_at(23))) == 1
    assert env.service.list_my_bookings("bob", status=BookingStatus.ACTIVE) == []


def test_room_availability(env):
    env.service.create_booking(_request(), requester="alice")
    env.service.create_booking(
        _request(start_time=_at(9, days=1), end_time=_at(10, days=1)), requester="alice"
    )

    availability = env.service.room_availability("room-1", date(2026, 3, 2))
    assert availability.day == date(2026, 3, 2)
    assert [b.start_time for b in availability.bookings] == [_at(9)]
    with pytest.raises(NotFoundError):
        env.service.room_availability("nope", date(2026, 3, 2))


def test_get_series_from_any_member(env):
    created = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule(weeks=2)), requester="alice"
    )
    view = env.service.get_series(created.series_booking_ids[1], requester="alice")
    assert view.seed.id == created.booking.id
    assert [o.id for o in view.occurrences] == created.series_booking_ids


def test_no_overlap_after_mixed_operations(env):
    series = env.service.create_booking(
        _request(recurrence_rule=_weekly_rule(weeks=4)), requester="alice"
    )
    attempts = [
        _request(start_time=_at(9, 30, days=7), end_time=_at(11, days=7), attendees=2),
        _request(start_time=_at(10), end_time=_at(11), attendees=2),
        _request(start_time=_at(8, 30, days=14), end_time=_at(9, 15, days=14), attendees=2),
    ]
    for request in attempts:
        try:
            env.service.create_booking(request, requester="bob")
        except ConflictError:
            pass

    env.service.cancel_booking(series.series_booking_ids[1], "alice")
    env.service.create_booking(
        _request(start_time=_at(8, 30, days=14), end_time=_at(9, 15, days=14), attendees=2),
        requester="bob",
    )
    mover = env.bookings.list_for_owner("bob")[0]
    try:
        env.service.update_booking(
            mover.id,
            UpdateBookingRequest(start_time=_at(9), end_time=_at(10, 30)),
            requester="bob",
        )
    except ConflictError:
        pass

    _assert_no_overlap(env.bookings)
