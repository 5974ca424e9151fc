from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from metaspn_schemas import EntityRef, SignalEnvelope
from metaspn_schemas.utils.time import datetime_to_str, ensure_utc

from state_timeline.errors import InvalidInputError

NO_DATA = "no_data"
STATE_CHANGED_PAYLOAD_TYPE = "StateChanged"
ENTITY_REF_TYPE = "entity_id"
DEFAULT_EVENT_SOURCE = "state_timeline.ingest"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def derive_event_id(entity_id: str, state: str, occurred_at: datetime) -> str:
    """Stable ID so that re-ingesting the same fact is a no-op."""
    token = f"{entity_id}|{state}|{datetime_to_str(occurred_at)}"
    return "s_" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]


def to_epoch_ms(value: datetime) -> int:
    return (ensure_utc(value) - _EPOCH) // timedelta(milliseconds=1)


@dataclass(frozen=True)
class StateEvent:
    """Immutable state-change fact for one entity."""

    entity_id: str
    state: str
    occurred_at: datetime
    event_id: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "occurred_at", ensure_utc(self.occurred_at))
        if not self.event_id:
            object.__setattr__(
                self,
                "event_id",
                derive_event_id(self.entity_id, self.state, self.occurred_at),
            )

    def to_envelope(self, source: str = DEFAULT_EVENT_SOURCE) -> SignalEnvelope:
        return SignalEnvelope(
            signal_id=self.event_id,
            timestamp=self.occurred_at,
            source=source,
            payload_type=STATE_CHANGED_PAYLOAD_TYPE,
            payload={"state": self.state},
            entity_refs=(EntityRef(ref_type=ENTITY_REF_TYPE, value=self.entity_id),),
        )

    @classmethod
    def from_envelope(cls, envelope: SignalEnvelope) -> StateEvent:
        entity_ids = [ref.value for ref in envelope.entity_refs if ref.ref_type == ENTITY_REF_TYPE]
        if not entity_ids:
            raise ValueError(f"Envelope {envelope.signal_id!r} has no {ENTITY_REF_TYPE} reference")
        if not isinstance(envelope.payload, dict) or "state" not in envelope.payload:
            raise ValueError(f"Envelope {envelope.signal_id!r} has no state payload")
        return cls(
            entity_id=entity_ids[0],
            state=str(envelope.payload["state"]),
            occurred_at=envelope.timestamp,
            event_id=envelope.signal_id,
        )


@dataclass(frozen=True)
class Interval:
    """Span [start, end) during which an entity held one state."""

    start: datetime
    end: datetime
    state: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": to_epoch_ms(self.start),
            "to": to_epoch_ms(self.end),
            "state": self.state,
        }


@dataclass(frozen=True)
class TimeWindow:
    """Closed query window [start, end]; start must be strictly before end."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.start >= self.end:
            raise InvalidInputError(
                f"window start {datetime_to_str(self.start)} must be before end {datetime_to_str(self.end)}"
            )

    def contains(self, value: datetime) -> bool:
        return self.start <= ensure_utc(value) <= self.end
