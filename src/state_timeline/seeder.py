from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Mapping

from loguru import logger
from metaspn_schemas.utils.time import str_to_datetime

from state_timeline.models import StateEvent
from state_timeline.store import FileSystemStore

# Column names accepted for each field, vehicle export layout first.
ENTITY_COLUMNS = ("vehicleId", "entity_id")
STATE_COLUMNS = ("event", "state")
TIMESTAMP_COLUMNS = ("timestamp", "occurred_at")


@dataclass(frozen=True)
class SeedReport:
    inserted: int = 0
    skipped_rows: int = 0
    skipped: bool = False


def _first_value(row: Mapping[str, str | None], columns: tuple[str, ...]) -> str:
    for column in columns:
        value = row.get(column)
        if value is not None and value.strip():
            return value.strip()
    return ""


def _parse_timestamp(text: str) -> datetime | None:
    try:
        return str_to_datetime(text)
    except ValueError:
        return None


def parse_rows(rows: Iterable[Mapping[str, str | None]]) -> Iterator[StateEvent | None]:
    """
    Turn CSV rows into events, yielding None for each row that must be skipped.

    Rows missing a field, with an unparsable timestamp, repeating an earlier
    row, or contradicting an earlier row at the same entity and timestamp are
    skipped with a warning.
    """
    seen: dict[tuple[str, datetime], str] = {}
    for line_no, row in enumerate(rows, start=2):
        entity_id = _first_value(row, ENTITY_COLUMNS)
        state = _first_value(row, STATE_COLUMNS)
        timestamp_text = _first_value(row, TIMESTAMP_COLUMNS)
        if not entity_id or not state or not timestamp_text:
            logger.warning("Skipping row {}: missing entity, state or timestamp", line_no)
            yield None
            continue
        occurred_at = _parse_timestamp(timestamp_text)
        if occurred_at is None:
            logger.warning("Skipping row {}: unparsable timestamp {!r}", line_no, timestamp_text)
            yield None
            continue

        key = (entity_id, occurred_at)
        previous_state = seen.get(key)
        if previous_state == state:
            logger.warning("Skipping row {}: duplicate of an earlier row for {}", line_no, entity_id)
            yield None
            continue
        if previous_state is not None:
            logger.warning(
                "Skipping row {}: {} already has state {!r} at {}, got {!r}",
                line_no,
                entity_id,
                previous_state,
                timestamp_text,
                state,
            )
            yield None
            continue
        seen[key] = state
        yield StateEvent(entity_id=entity_id, state=state, occurred_at=occurred_at)


class DataSeeder:
    """One-shot bulk load of historical events from a CSV export."""

    def __init__(self, store: FileSystemStore) -> None:
        self.store = store

    def seed(self, csv_path: str | Path) -> SeedReport:
        logger.info("Checking store for existing data...")
        existing = self.store.count_events()
        if existing > 0:
            logger.info("Store already contains {} records. Seeding skipped.", existing)
            return SeedReport(skipped=True)

        source = Path(csv_path)
        if not source.exists():
            logger.error("CSV file not found at {}. Cannot seed data.", source)
            return SeedReport(skipped=True)

        logger.info("Starting to seed the store from {}", source)
        events: list[StateEvent] = []
        skipped_rows = 0
        with source.open("r", encoding="utf-8", newline="") as handle:
            for event in parse_rows(csv.DictReader(handle)):
                if event is None:
                    skipped_rows += 1
                    continue
                events.append(event)

        if not events:
            logger.warning("CSV file is empty or contains no parsable records. No data to seed.")
            return SeedReport(skipped_rows=skipped_rows)

        logger.info("Parsed {} records from CSV. Writing to store...", len(events))
        self.store.write_events(events, on_duplicate="ignore")
        logger.info("Seeding completed: {} inserted, {} rows skipped", len(events), skipped_rows)
        return SeedReport(inserted=len(events), skipped_rows=skipped_rows)
