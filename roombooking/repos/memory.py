"""In-memory repositories for rooms, bookings and their timelines."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from roombooking.domain.errors import StoreError
from roombooking.domain.models import (
    Amenity,
    Booking,
    BookingStatus,
    Room,
    TimelineEntry,
)
from roombooking.services.conflicts import find_conflicts


class RoomRepository:
    """Read side of the room catalog, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Room] = {}

    def add(self, room: Room) -> None:
        self._store[room.id] = room

    def get(self, room_id: str) -> Room | None:
        return self._store.get(room_id)

    def list_all(self) -> list[Room]:
        return list(self._store.values())


class BookingRepository:
    """Dict-backed store for Booking instances, keyed by id.

    ``room_lock`` hands out one lock per room so a caller can make the
    conflict check and the insert that follows it a single critical section.
    """

    def __init__(self) -> None:
        self._store: dict[str, Booking] = {}
        self._room_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def room_lock(self, room_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._room_locks.setdefault(room_id, threading.Lock())
        with lock:
            yield

    # -- writes ----------------------------------------------------------

    def add(self, booking: Booking) -> None:
        self._store[booking.id] = booking

    def add_many(self, bookings: Iterable[Booking]) -> None:
        for booking in bookings:
            self.add(booking)

    def update_status(
        self, booking_id: str, status: BookingStatus, at: datetime
    ) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None:
            raise StoreError(f"Booking {booking_id} vanished from the store")
        booking.status = status
        booking.updated_at = at
        return booking

    def update_status_bulk(
        self, booking_ids: Iterable[str], status: BookingStatus, at: datetime
    ) -> list[str]:
        """Apply ``status`` to each id in turn.

        Not atomic: if one update fails the ones before it stay applied and
        the raised StoreError lists them.
        """
        applied: list[str] = []
        for booking_id in booking_ids:
            try:
                self.update_status(booking_id, status, at)
            except StoreError as exc:
                raise StoreError(
                    f"Bulk status update stopped at {booking_id}: {exc.message}",
                    applied_ids=applied,
                ) from exc
            applied.append(booking_id)
        return applied

    def delete(self, booking_id: str) -> None:
        self._store.pop(booking_id, None)

    # -- reads -----------------------------------------------------------

    def get(self, booking_id: str) -> Booking | None:
        return self._store.get(booking_id)

    def list_all(self) -> list[Booking]:
        return sorted(self._store.values(), key=lambda b: b.start_time)

    def filter(self, predicate: Callable[[Booking], bool]) -> list[Booking]:
        return [b for b in self.list_all() if predicate(b)]

    def list_for_owner(self, owner_id: str) -> list[Booking]:
        return self.filter(lambda b: b.owner_id == owner_id)

    def list_active_for_room(self, room_id: str) -> list[Booking]:
        return self.filter(
            lambda b: b.room_id == room_id and b.status == BookingStatus.ACTIVE
        )

    def list_children(self, parent_id: str) -> list[Booking]:
        """Return all bookings generated from the seed ``parent_id``."""
        return self.filter(lambda b: b.parent_booking_id == parent_id)

    def find_overlapping(
        self,
        room_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        candidates = [
            b
            for b in self.list_active_for_room(room_id)
            if b.id != exclude_booking_id
        ]
        return find_conflicts(start_time, end_time, candidates)


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_booking(self, booking_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.booking_id == booking_id],
            key=lambda e: e.timestamp,
        )


# ---------------------------------------------------------------------------
# Seed data – a small room catalog for local runs
# ---------------------------------------------------------------------------


def seed_rooms(repo: RoomRepository) -> None:
    repo.add(
        Room(
            id="room-atlas",
            name="Atlas",
            capacity=10,
            location="Floor 2, East wing",
            amenities=[Amenity.PROJECTOR, Amenity.WHITEBOARD, Amenity.WIFI],
        )
    )
    repo.add(
        Room(
            id="room-borealis",
            name="Borealis",
            capacity=4,
            location="Floor 2, West wing",
            amenities=[Amenity.WHITEBOARD, Amenity.WIFI],
        )
    )
    repo.add(
        Room(
            id="room-cosmos",
            name="Cosmos",
            capacity=24,
            location="Floor 5",
            amenities=[
                Amenity.PROJECTOR,
                Amenity.VIDEO_CONFERENCE,
                Amenity.AUDIO_SYSTEM,
                Amenity.AIR_CONDITIONING,
            ],
        )
    )
    repo.add(
        Room(
            id="room-delta",
            name="Delta",
            capacity=6,
            location="Floor 3",
            is_available=False,
            description="Closed for refurbishment",
        )
    )
