"""
Domain layer - Pure business logic without external dependencies.
"""

from .free_time import compute_free_time, filter_min_duration, merge_busy, total_minutes
from .models import (
    AccessResult,
    AccessStatus,
    BusyEvent,
    CalendarInfo,
    TimeInterval,
    WorkWindow,
    sort_calendars,
)

__all__ = [
    "AccessResult",
    "AccessStatus",
    "BusyEvent",
    "CalendarInfo",
    "TimeInterval",
    "WorkWindow",
    "compute_free_time",
    "filter_min_duration",
    "merge_busy",
    "sort_calendars",
    "total_minutes",
]
