from __future__ import annotations


class TimelineError(Exception):
    """Base class for errors raised by state-timeline."""


class InvalidInputError(TimelineError, ValueError):
    """Raised when a window or builder precondition is violated by the caller."""


class DependencyFailureError(TimelineError):
    """Raised when the event store could not serve a timeline request."""


class DuplicateEventError(TimelineError, ValueError):
    """Raised when a duplicate event ID is written with on_duplicate='raise'."""
