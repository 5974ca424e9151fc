from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Protocol

from loguru import logger
from metaspn_schemas.utils.time import datetime_to_str

from state_timeline.errors import DependencyFailureError, InvalidInputError
from state_timeline.intervals import build_intervals
from state_timeline.models import Interval, StateEvent, TimeWindow


class EventSource(Protocol):
    def find_latest_before(self, entity_id: str, timestamp: datetime) -> StateEvent | None: ...

    def find_in_range(self, entity_id: str, start: datetime, end: datetime) -> list[StateEvent]: ...


class TimelineService:
    """Compose the two event-store reads with the interval builder."""

    def __init__(self, store: EventSource, *, parallel_reads: bool = False) -> None:
        self.store = store
        self.parallel_reads = parallel_reads

    def generate_timeline(self, entity_id: str, start: datetime, end: datetime) -> list[Interval]:
        """
        Return the intervals covering [start, end] for entity_id.

        Raises InvalidInputError for an empty entity id or start >= end, and
        DependencyFailureError when the store reads fail. No partial result is
        ever returned.
        """
        if not entity_id or not entity_id.strip():
            raise InvalidInputError("entity_id should not be empty.")
        window = TimeWindow(start=start, end=end)
        logger.info(
            "Generating timeline for entity {} from {} to {}",
            entity_id,
            datetime_to_str(window.start),
            datetime_to_str(window.end),
        )

        # Only the store reads are wrapped; any failure there is a dependency failure.
        try:
            prior_event, events = self._read_events(entity_id, window)
        except Exception as error:
            logger.opt(exception=error).error("Error generating timeline for entity {}: {}", entity_id, error)
            raise DependencyFailureError("Failed to generate timeline due to an internal error.") from error

        timeline = build_intervals(window.start, window.end, prior_event, events)
        logger.info("Successfully built {} intervals for entity {}", len(timeline), entity_id)
        return timeline

    def _read_events(self, entity_id: str, window: TimeWindow) -> tuple[StateEvent | None, list[StateEvent]]:
        if not self.parallel_reads:
            prior_event = self.store.find_latest_before(entity_id, window.start)
            events = self.store.find_in_range(entity_id, window.start, window.end)
            return prior_event, events

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="timeline-read") as pool:
            prior_future = pool.submit(self.store.find_latest_before, entity_id, window.start)
            events_future = pool.submit(self.store.find_in_range, entity_id, window.start, window.end)
            return prior_future.result(), events_future.result()
