from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Sequence

from metaspn_schemas.utils.time import datetime_to_str

from state_timeline.errors import InvalidInputError
from state_timeline.models import NO_DATA, Interval, StateEvent, TimeWindow


def _check_preconditions(
    window: TimeWindow,
    prior_event: StateEvent | None,
    events: Sequence[StateEvent],
) -> None:
    if prior_event is not None and prior_event.occurred_at >= window.start:
        raise InvalidInputError(
            f"prior event at {datetime_to_str(prior_event.occurred_at)} is not before window start"
        )
    previous: datetime | None = None
    for event in events:
        if not window.contains(event.occurred_at):
            raise InvalidInputError(
                f"event {event.event_id!r} at {datetime_to_str(event.occurred_at)} lies outside the window"
            )
        if previous is not None and event.occurred_at < previous:
            raise InvalidInputError("events must be in non-decreasing occurred_at order")
        if not event.state:
            raise InvalidInputError(f"event {event.event_id!r} has an empty state")
        previous = event.occurred_at


def build_intervals(
    start: datetime,
    end: datetime,
    prior_event: StateEvent | None,
    events: Sequence[StateEvent],
) -> list[Interval]:
    """
    Build the interval sequence covering [start, end] for one entity.

    - prior_event: latest event strictly before start, or None (state is NO_DATA).
    - events: in-window events in ascending occurred_at order.

    An event landing exactly on the running boundary replaces the pending
    state instead of opening a zero-width interval, and same-state events
    extend the open interval.
    """
    window = TimeWindow(start=start, end=end)
    _check_preconditions(window, prior_event, events)

    timeline: list[Interval] = []
    current_state = prior_event.state if prior_event is not None and prior_event.state else NO_DATA
    cursor = window.start

    for event in events:
        if event.occurred_at == cursor:
            current_state = event.state
            continue
        if event.state != current_state:
            timeline.append(Interval(start=cursor, end=event.occurred_at, state=current_state))
            cursor = event.occurred_at
            current_state = event.state

    if cursor < window.end:
        timeline.append(Interval(start=cursor, end=window.end, state=current_state))

    # The output must never be empty, even if the cursor already sits on window.end.
    if not timeline:
        timeline.append(Interval(start=window.start, end=window.end, state=current_state))

    timeline[0] = replace(timeline[0], start=window.start)
    timeline[-1] = replace(timeline[-1], end=window.end)
    return timeline
