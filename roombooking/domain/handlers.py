"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

from roombooking.domain.bus import EventBus
from roombooking.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingDeleted,
    BookingUpdated,
    SeriesExpanded,
)
from roombooking.domain.models import TimelineEntry, TimelineEntryType
from roombooking.repos.memory import TimelineRepository
from roombooking.utils.logger import get_logger

logger = get_logger(__name__)


class HandlerRegistry:
    """Records a timeline entry for every booking lifecycle event."""

    def __init__(self, bus: EventBus, timeline_repo: TimelineRepository) -> None:
        self.bus = bus
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(BookingCreated, self.on_booking_created)
        self.bus.subscribe(SeriesExpanded, self.on_series_expanded)
        self.bus.subscribe(BookingUpdated, self.on_booking_updated)
        self.bus.subscribe(BookingCancelled, self.on_booking_cancelled)
        self.bus.subscribe(BookingCompleted, self.on_booking_completed)
        self.bus.subscribe(BookingDeleted, self.on_booking_deleted)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_booking_created(self, event: BookingCreated) -> None:
        logger.info("Booking %s created by %s", event.booking_id, event.requester)
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.CREATED,
                payload={"requester": event.requester},
            )
        )

    def on_series_expanded(self, event: SeriesExpanded) -> None:
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.SERIES_EXPANDED,
                payload={
                    "created_booking_ids": event.created_booking_ids,
                    "skipped": [
                        o.model_dump(mode="json") for o in event.skipped_occurrences
                    ],
                },
            )
        )
        # Occurrences get their own "created" entry pointing back at the seed.
        for booking_id in event.created_booking_ids:
            self.timeline_repo.add(
                TimelineEntry(
                    booking_id=booking_id,
                    type=TimelineEntryType.CREATED,
                    payload={"parent_booking_id": event.booking_id},
                )
            )

    def on_booking_updated(self, event: BookingUpdated) -> None:
        logger.info("Booking %s updated: %s", event.booking_id, sorted(event.changes))
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.UPDATED,
                payload=event.changes,
            )
        )

    def on_booking_cancelled(self, event: BookingCancelled) -> None:
        payload = {}
        if event.cascaded_from:
            payload["cascaded_from"] = event.cascaded_from
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.CANCELLED,
                payload=payload,
            )
        )

    def on_booking_completed(self, event: BookingCompleted) -> None:
        self.timeline_repo.add(
            TimelineEntry(booking_id=event.booking_id, type=TimelineEntryType.COMPLETED)
        )

    def on_booking_deleted(self, event: BookingDeleted) -> None:
        logger.info("Booking %s deleted by %s", event.booking_id, event.requester)
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.DELETED,
                payload={"requester": event.requester},
            )
        )
