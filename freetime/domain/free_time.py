"""
Core business logic for deriving free time from busy intervals.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from typing import Iterable, List, Optional

from .models import TimeInterval


def compute_free_time(
    window: Optional[TimeInterval],
    busy: Iterable[TimeInterval],
) -> List[TimeInterval]:
    """
    Derive the free gaps of a window that no busy interval covers.

    Algorithm:
    1. Clamp every busy interval to the window, dropping the ones outside it
    2. Sort the clamped intervals by start (stable)
    3. Walk a cursor from the window start, emitting a gap whenever the next
       busy interval starts after the cursor
    4. Emit the remainder of the window after the last busy interval

    Example:
    Window: 08:00 - 17:00
    Busy: [09:00-11:00, 10:00-12:00]
    Result: [08:00-09:00, 12:00-17:00]

    Args:
        window: The working window, or None if it could not be resolved
        busy: Busy intervals in any order, possibly overlapping

    Returns:
        Ascending, pairwise disjoint free intervals
    """
    if window is None or window.start >= window.end:
        return []

    free: List[TimeInterval] = []
    cursor = window.start

    for interval in _clamp_to_window(window, busy):
        # Gap before this busy period
        if interval.start > cursor:
            free.append(TimeInterval(start=cursor, end=interval.start))

        # Overlapping and contained intervals only move the cursor forward
        if interval.end > cursor:
            cursor = interval.end

    if cursor < window.end:
        free.append(TimeInterval(start=cursor, end=window.end))

    return free


def merge_busy(
    window: Optional[TimeInterval],
    busy: Iterable[TimeInterval],
) -> List[TimeInterval]:
    """
    Normalize busy intervals to the blocks actually subtracted from the window.

    Example: [09:00-10:00, 09:30-11:00, 11:00-12:00] -> [09:00-12:00]
    """
    if window is None or window.start >= window.end:
        return []

    merged: List[TimeInterval] = []

    for interval in _clamp_to_window(window, busy):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeInterval(start=last.start, end=max(last.end, interval.end))
        else:
            merged.append(interval)

    return merged


def filter_min_duration(
    slots: Iterable[TimeInterval],
    min_duration_minutes: int,
) -> List[TimeInterval]:
    """Keep only slots lasting at least min_duration_minutes."""
    return [slot for slot in slots if slot.duration_minutes() >= min_duration_minutes]


def total_minutes(intervals: Iterable[TimeInterval]) -> int:
    return sum(interval.duration_minutes() for interval in intervals)


def _clamp_to_window(
    window: TimeInterval,
    busy: Iterable[TimeInterval],
) -> List[TimeInterval]:
    """
    Clip busy intervals to the window and sort them by start.

    Intervals that are empty after clipping cover no time and are dropped,
    so an instantaneous event never splits a gap.
    """
    clamped: List[TimeInterval] = []

    for interval in busy:
        clipped = interval.clamp(window)
        if clipped is not None and not clipped.is_empty():
            clamped.append(clipped)

    # sorted() is stable: equal starts keep their input order
    return sorted(clamped, key=lambda interval: interval.start)
