"""
Domain models for busy events, free intervals and working windows.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Iterable, List, Optional

import pendulum
from pendulum import DateTime

from .exceptions import (
    AccessDeniedError,
    AccessError,
    AccessRestrictedError,
    AccessWriteOnlyError,
    InvalidWindowError,
)


@dataclass(frozen=True, eq=False)
class TimeInterval:
    """
    Represents an immutable span of time, either a busy block or a free gap.

    Invariant: start must not be after end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Start time {self.start} must not be after end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def is_empty(self) -> bool:
        return self.start == self.end

    def overlaps(self, other: "TimeInterval") -> bool:
        """Check if this interval overlaps with another."""
        return self.start < other.end and self.end > other.start

    def clamp(self, window: "TimeInterval") -> "TimeInterval | None":
        """
        Return the part of this interval that lies inside the window.
        Returns None if there is no overlap.
        """
        if not self.overlaps(window):
            return None

        return TimeInterval(
            start=max(self.start, window.start),
            end=min(self.end, window.end),
        )

    def format_time_range(self) -> str:
        """Format as 'HH:mm - HH:mm'."""
        return f"{self.start.format('HH:mm')} - {self.end.format('HH:mm')}"

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"

    # A window and a free gap with the same bounds are the same span
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeInterval):
            return NotImplemented
        return (self.start, self.end) == (other.start, other.end)

    def __hash__(self) -> int:
        return hash((self.start, self.end))


@dataclass(frozen=True, eq=False)
class WorkWindow(TimeInterval):
    """
    The span within which free time is computed.

    Invariant: start must be strictly before end.
    """

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidWindowError(
                f"Window start {self.start} must be before window end {self.end}"
            )

    @classmethod
    def for_day(
        cls,
        day: date,
        start_hour: int,
        end_hour: int,
        timezone: str = "UTC",
    ) -> "WorkWindow | None":
        """
        Resolve a working window for a calendar date.

        start_hour may be 0-23 and end_hour 1-24; an end hour of 24 means
        midnight at the start of the following day. Returns None if the hours
        cannot be resolved to a valid window.
        """
        if not 0 <= start_hour <= 23 or not 1 <= end_hour <= 24:
            return None

        try:
            day_start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
        except (KeyError, ValueError):
            # Unknown time zone
            return None

        start = day_start.set(hour=start_hour)
        if end_hour == 24:
            end = day_start.add(days=1)
        else:
            end = day_start.set(hour=end_hour)

        if start >= end:
            return None

        return cls(start=start, end=end)


@dataclass(frozen=True)
class BusyEvent:
    """
    A calendar event as delivered by an event provider.

    Only start and end take part in the computation; the remaining fields
    are carried along for display.
    """
    start: DateTime
    end: DateTime
    title: Optional[str] = None
    calendar_id: Optional[str] = None
    calendar_title: Optional[str] = None
    color_hint: Any = None

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Event '{self.title}' ends before it starts")

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(start=self.start, end=self.end)

    def display_title(self) -> str:
        return self.title or "(No title)"


@dataclass(frozen=True)
class CalendarInfo:
    """A calendar offered by the provider, used to populate a filter selector."""
    id: str
    title: str
    source_title: str = ""
    color_hint: Any = None


def sort_calendars(calendars: Iterable[CalendarInfo]) -> List[CalendarInfo]:
    """
    Order calendars for display: grouped by source, then by title.
    Both keys compare case-insensitively.
    """
    return sorted(
        calendars,
        key=lambda cal: (cal.source_title.lower(), cal.title.lower()),
    )


class AccessStatus(str, Enum):
    """Outcomes of the calendar permission check that alter behaviour."""
    UNKNOWN = "unknown"
    PROMPT_PENDING = "prompt_pending"
    GRANTED = "granted"
    DENIED = "denied"
    RESTRICTED = "restricted"
    WRITE_ONLY = "write_only"

    @property
    def is_terminal(self) -> bool:
        return self not in (AccessStatus.UNKNOWN, AccessStatus.PROMPT_PENDING)


_ACCESS_ERRORS = {
    AccessStatus.DENIED: AccessDeniedError,
    AccessStatus.RESTRICTED: AccessRestrictedError,
    AccessStatus.WRITE_ONLY: AccessWriteOnlyError,
}


@dataclass(frozen=True)
class AccessResult:
    """Result of asking the permission capability for read access."""
    status: AccessStatus
    error_message: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.status is AccessStatus.GRANTED

    def to_error(self) -> AccessError | None:
        """Map a refusal onto the matching exception, or None when granted."""
        if self.granted:
            return None
        error_cls = _ACCESS_ERRORS.get(self.status, AccessError)
        return error_cls(self.error_message)
