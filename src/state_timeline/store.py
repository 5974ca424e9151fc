from __future__ import annotations

import json
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator, Literal

from metaspn_schemas import SignalEnvelope
from metaspn_schemas.utils.time import ensure_utc

from state_timeline.errors import DuplicateEventError
from state_timeline.models import STATE_CHANGED_PAYLOAD_TYPE, StateEvent

DuplicatePolicy = Literal["ignore", "return_existing", "raise"]


def _iter_days(start_day: date, end_day: date) -> Iterator[date]:
    current = start_day
    while current <= end_day:
        yield current
        current += timedelta(days=1)


def _partition_day(partition: Path) -> date | None:
    try:
        return date.fromisoformat(partition.stem)
    except ValueError:
        return None


class FileSystemStore:
    """Append-only filesystem store for entity state-change events."""

    def __init__(self, workspace: str | Path) -> None:
        self.workspace = Path(workspace)
        self.store_root = self.workspace / "store"
        self.events_dir = self.store_root / "events"
        self._event_index: dict[str, Path] | None = None
        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        self.events_dir.mkdir(parents=True, exist_ok=True)

    def _read_partition(self, partition: Path) -> Iterator[StateEvent]:
        with partition.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                envelope = SignalEnvelope.from_dict(json.loads(line))
                if envelope.payload_type != STATE_CHANGED_PAYLOAD_TYPE:
                    continue
                yield StateEvent.from_envelope(envelope)

    def _build_index(self) -> dict[str, Path]:
        index: dict[str, Path] = {}
        for partition in sorted(self.events_dir.glob("*.jsonl")):
            with partition.open("r", encoding="utf-8") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    record = json.loads(line)
                    record_id = record.get("signal_id")
                    if isinstance(record_id, str) and record_id not in index:
                        index[record_id] = partition
        return index

    def _get_event_index(self) -> dict[str, Path]:
        if self._event_index is None:
            self._event_index = self._build_index()
        return self._event_index

    def _resolve_duplicate(
        self,
        *,
        existing_path: Path | None,
        on_duplicate: DuplicatePolicy,
        event_id: str,
    ) -> Path | None:
        if existing_path is None:
            return None
        if on_duplicate in ("ignore", "return_existing"):
            return existing_path
        if on_duplicate == "raise":
            raise DuplicateEventError(f"Duplicate event_id={event_id!r} already exists in {existing_path}")
        raise ValueError(f"Unsupported duplicate policy: {on_duplicate!r}")

    def write_event(
        self,
        event: StateEvent,
        *,
        on_duplicate: DuplicatePolicy = "return_existing",
    ) -> Path:
        """Append an event and return the written partition, or existing one for duplicates."""
        if not event.entity_id:
            raise ValueError("entity_id is required")
        if not event.state:
            raise ValueError("state is required")

        event_index = self._get_event_index()
        duplicate_path = self._resolve_duplicate(
            existing_path=event_index.get(event.event_id),
            on_duplicate=on_duplicate,
            event_id=event.event_id,
        )
        if duplicate_path is not None:
            return duplicate_path

        destination = self.events_dir / f"{event.occurred_at.date().isoformat()}.jsonl"
        with destination.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event.to_envelope().to_dict(), sort_keys=True, separators=(",", ":")))
            handle.write("\n")
        event_index[event.event_id] = destination
        return destination

    def write_events(
        self,
        events: Iterable[StateEvent],
        *,
        on_duplicate: DuplicatePolicy = "return_existing",
    ) -> list[Path]:
        """Write a batch of events using the same duplicate policy."""
        return [self.write_event(event, on_duplicate=on_duplicate) for event in events]

    def count_events(self) -> int:
        return len(self._get_event_index())

    def iter_events(
        self,
        start: datetime,
        end: datetime,
        entity_id: str | None = None,
    ) -> Iterator[StateEvent]:
        """Stream events in [start, end] in storage order, optionally for a single entity."""
        start_utc = ensure_utc(start)
        end_utc = ensure_utc(end)
        if end_utc < start_utc:
            raise ValueError("end must be greater than or equal to start")

        seen_event_ids: set[str] = set()
        for day in _iter_days(start_utc.date(), end_utc.date()):
            partition = self.events_dir / f"{day.isoformat()}.jsonl"
            if not partition.exists():
                continue
            for event in self._read_partition(partition):
                if event.occurred_at < start_utc or event.occurred_at > end_utc:
                    continue
                if event.event_id in seen_event_ids:
                    continue
                if entity_id is not None and event.entity_id != entity_id:
                    continue
                seen_event_ids.add(event.event_id)
                yield event

    def find_in_range(self, entity_id: str, start: datetime, end: datetime) -> list[StateEvent]:
        """Return the entity's events with start <= occurred_at <= end, oldest first."""
        events = list(self.iter_events(start, end, entity_id=entity_id))
        # Stable: same-timestamp events keep their storage order.
        events.sort(key=lambda event: event.occurred_at)
        return events

    def find_latest_before(self, entity_id: str, timestamp: datetime) -> StateEvent | None:
        """Return the entity's most recent event strictly before timestamp, or None."""
        cutoff = ensure_utc(timestamp)
        partitions: list[tuple[date, Path]] = []
        for partition in self.events_dir.glob("*.jsonl"):
            day = _partition_day(partition)
            if day is not None and day <= cutoff.date():
                partitions.append((day, partition))
        partitions.sort(key=lambda item: item[0], reverse=True)

        for _, partition in partitions:
            latest: StateEvent | None = None
            seen_event_ids: set[str] = set()
            for event in self._read_partition(partition):
                if event.entity_id != entity_id or event.occurred_at >= cutoff:
                    continue
                if event.event_id in seen_event_ids:
                    continue
                seen_event_ids.add(event.event_id)
                # Later-stored events win ties on occurred_at.
                if latest is None or event.occurred_at >= latest.occurred_at:
                    latest = event
            if latest is not None:
                return latest
        return None
