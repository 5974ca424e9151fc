from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from metaspn_schemas import SignalEnvelope

from state_timeline import DuplicateEventError, FileSystemStore, StateEvent


def _ts(day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(2026, 2, day, hour, minute, tzinfo=timezone.utc)


def _event(entity_id: str, state: str, at: datetime, event_id: str = "") -> StateEvent:
    return StateEvent(entity_id=entity_id, state=state, occurred_at=at, event_id=event_id)


def test_round_trip_event(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    event = _event("sprint-3", "running", _ts(5, 10))

    path = store.write_event(event)

    assert path.name == "2026-02-05.jsonl"
    assert list(store.iter_events(_ts(5, 0), _ts(5, 23, 59))) == [event]


def test_records_are_stored_as_signal_envelopes(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    path = store.write_event(_event("sprint-3", "running", _ts(5, 10)))

    record = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
    envelope = SignalEnvelope.from_dict(record)

    assert envelope.payload_type == "StateChanged"
    assert envelope.payload == {"state": "running"}
    assert [ref.value for ref in envelope.entity_refs] == ["sprint-3"]


def test_iteration_ordering_across_partitions(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    written = [
        _event("sprint-3", state, ts)
        for state, ts in [("running", _ts(5, 23, 59)), ("idle", _ts(6, 0, 1)), ("offline", _ts(6, 12, 0))]
    ]
    store.write_events(written)

    assert list(store.iter_events(_ts(5, 0), _ts(6, 23, 59))) == written


def test_find_in_range_filters_entity_and_includes_bounds(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    store.write_events(
        [
            _event("sprint-3", "offline", _ts(5, 9, 59)),
            _event("sprint-3", "running", _ts(5, 10, 0)),
            _event("sprint-4", "running", _ts(5, 10, 30)),
            _event("sprint-3", "idle", _ts(5, 11, 0)),
            _event("sprint-3", "error", _ts(5, 11, 1)),
        ]
    )

    found = store.find_in_range("sprint-3", _ts(5, 10, 0), _ts(5, 11, 0))

    assert [(event.state, event.occurred_at) for event in found] == [
        ("running", _ts(5, 10, 0)),
        ("idle", _ts(5, 11, 0)),
    ]


def test_find_in_range_sorts_out_of_order_writes_stably(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    store.write_events(
        [
            _event("sprint-3", "error", _ts(5, 11)),
            _event("sprint-3", "running", _ts(5, 10)),
            _event("sprint-3", "idle", _ts(5, 11)),
        ]
    )

    found = store.find_in_range("sprint-3", _ts(5, 0), _ts(5, 23))

    assert [event.state for event in found] == ["running", "error", "idle"]


def test_find_latest_before_is_strict(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    store.write_events(
        [
            _event("sprint-3", "offline", _ts(5, 9)),
            _event("sprint-3", "running", _ts(5, 10)),
        ]
    )

    latest = store.find_latest_before("sprint-3", _ts(5, 10))

    assert latest is not None
    assert latest.state == "offline"


def test_find_latest_before_searches_older_partitions(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    store.write_events(
        [
            _event("sprint-3", "running", _ts(1, 8)),
            _event("sprint-3", "offline", _ts(2, 17)),
            _event("sprint-4", "error", _ts(9, 8)),
        ]
    )

    latest = store.find_latest_before("sprint-3", _ts(9, 12))

    assert latest is not None
    assert (latest.state, latest.occurred_at) == ("offline", _ts(2, 17))


def test_find_latest_before_ignores_future_partitions_and_other_entities(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    store.write_events(
        [
            _event("sprint-4", "running", _ts(4, 8)),
            _event("sprint-3", "running", _ts(6, 8)),
        ]
    )

    assert store.find_latest_before("sprint-3", _ts(5, 0)) is None
    assert store.find_latest_before("unknown", _ts(9, 0)) is None


def test_find_latest_before_prefers_last_stored_on_equal_timestamps(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    store.write_events(
        [
            _event("sprint-3", "running", _ts(5, 9)),
            _event("sprint-3", "error", _ts(5, 9)),
        ]
    )

    latest = store.find_latest_before("sprint-3", _ts(5, 10))

    assert latest is not None
    assert latest.state == "error"


def test_large_file_streaming_iteration(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    start = _ts(5, 0, 0)
    total = 5000

    store.write_events(
        _event("sprint-3", "running" if idx % 2 else "idle", start + timedelta(seconds=idx))
        for idx in range(total)
    )

    stream = store.iter_events(start=start, end=start + timedelta(days=1))
    first = next(stream)
    second = next(stream)
    assert (first.state, second.state) == ("idle", "running")

    count = 2 + sum(1 for _ in stream)
    assert count == total


def test_duplicate_write_returns_existing_and_iteration_has_single_record(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    first = _event("sprint-3", "running", _ts(5, 10), event_id="s-dup")
    second = _event("sprint-3", "error", _ts(6, 10), event_id="s-dup")

    first_path = store.write_event(first)
    second_path = store.write_event(second)

    assert second_path == first_path
    replayed = list(store.iter_events(_ts(5, 0), _ts(6, 23, 59)))
    assert replayed == [first]


def test_same_fact_written_twice_is_stored_once(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)

    store.write_event(_event("sprint-3", "running", _ts(5, 10)))
    store.write_event(_event("sprint-3", "running", _ts(5, 10)))

    assert store.count_events() == 1


def test_on_duplicate_raise_policy(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    event = _event("sprint-3", "running", _ts(5, 12))
    store.write_event(event)
    with pytest.raises(DuplicateEventError):
        store.write_event(event, on_duplicate="raise")


def test_unsupported_duplicate_policy(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    event = _event("sprint-3", "running", _ts(5, 12))
    store.write_event(event)
    with pytest.raises(ValueError, match="Unsupported duplicate policy"):
        store.write_event(event, on_duplicate="overwrite")  # type: ignore[arg-type]


def test_index_is_rebuilt_from_disk(tmp_path: Path) -> None:
    FileSystemStore(tmp_path).write_events(
        [_event("sprint-3", "running", _ts(5, 10)), _event("sprint-3", "idle", _ts(6, 10))]
    )

    reopened = FileSystemStore(tmp_path)

    assert reopened.count_events() == 2
    with pytest.raises(DuplicateEventError):
        reopened.write_event(_event("sprint-3", "idle", _ts(6, 10)), on_duplicate="raise")


def test_inverted_window_raises(tmp_path: Path) -> None:
    store = FileSystemStore(tmp_path)
    with pytest.raises(ValueError):
        list(store.iter_events(_ts(6), _ts(5)))
