from state_timeline.errors import (
    DependencyFailureError,
    DuplicateEventError,
    InvalidInputError,
    TimelineError,
)
from state_timeline.intervals import build_intervals
from state_timeline.models import NO_DATA, Interval, StateEvent, TimeWindow
from state_timeline.service import TimelineService
from state_timeline.store import FileSystemStore

__all__ = [
    "DependencyFailureError",
    "DuplicateEventError",
    "FileSystemStore",
    "Interval",
    "InvalidInputError",
    "NO_DATA",
    "StateEvent",
    "TimeWindow",
    "TimelineError",
    "TimelineService",
    "build_intervals",
]
