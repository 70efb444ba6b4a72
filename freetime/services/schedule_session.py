"""
Application service holding the state of one free-time analysis session.

The session coordinates fetching events via an event provider adapter and
delegates the free-time calculation to the domain-level
``compute_free_time``. It never talks to a calendar backend itself: the
event provider, the access provider and the optional calendar catalog are
handed in at construction, which keeps the CLI thin and lets tests drive the
session with simple stubs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import FreeTimeError, InvalidWindowError, ProviderFailure
from ..domain.free_time import compute_free_time
from ..domain.models import (
    AccessResult,
    AccessStatus,
    BusyEvent,
    CalendarInfo,
    TimeInterval,
    WorkWindow,
    sort_calendars,
)

logger = logging.getLogger(__name__)

SIMULATED_EVENT_TITLE = "Simulated Event"
PROMPT_REFUSED_MESSAGE = "Calendar access was not granted."


class EventProviderProtocol(Protocol):
    """Protocol describing the event source needed by the session."""

    async def fetch_busy(
        self,
        window: TimeInterval,
        calendar_id: Optional[str],
    ) -> List[BusyEvent]:
        """Return events overlapping the window, limited to one calendar if given."""


class CalendarCatalogProtocol(Protocol):
    """Protocol for listing the calendars a user can filter by."""

    async def list_calendars(self) -> List[CalendarInfo]:
        """Return all readable calendars."""


class AccessProviderProtocol(Protocol):
    """Protocol wrapping the platform permission check."""

    def authorization_status(self) -> AccessStatus:
        """Return the current status without prompting."""

    async def request_access(self) -> AccessResult:
        """Prompt for read access and report the outcome."""


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session for rendering."""
    selected_date: date
    work_start_hour: int
    work_end_hour: int
    calendar_id: str
    auto_sync_minutes: float
    last_sync_time: Optional[DateTime]
    window: Optional[TimeInterval]
    events: Tuple[BusyEvent, ...]
    free_slots: Tuple[TimeInterval, ...]
    calendars: Tuple[CalendarInfo, ...]
    access_status: AccessStatus
    access_error: Optional[str]
    sync_error: Optional[str]
    simulated: bool

    @property
    def access_granted(self) -> bool:
        return self.access_status is AccessStatus.GRANTED


class ScheduleSession:
    """
    Mutable state of a single analysis view.

    ``free_slots`` is always the free time of the active window given
    ``events``: every operation that changes either input recomputes before
    it releases the session lock. The active window is the working window of
    the selected date, or the simulated interval after ``simulate``. Without
    read access to the calendar the result is empty.
    """

    def __init__(
        self,
        event_provider: EventProviderProtocol,
        access_provider: AccessProviderProtocol,
        calendar_catalog: Optional[CalendarCatalogProtocol] = None,
        *,
        timezone: str = "UTC",
        selected_date: Optional[date] = None,
        work_start_hour: int = 9,
        work_end_hour: int = 17,
        calendar_id: str = "",
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._event_provider = event_provider
        self._access_provider = access_provider
        self._calendar_catalog = calendar_catalog
        self._timezone = timezone
        self._clock = clock or (lambda: pendulum.now(timezone))

        self._lock = asyncio.Lock()
        # Serializes replacing the auto-sync task; never held while refreshing
        self._auto_sync_lock = asyncio.Lock()
        self._auto_sync_task: Optional[asyncio.Task] = None

        self._selected_date = selected_date or pendulum.today(timezone).date()
        self._work_start_hour = work_start_hour
        self._work_end_hour = work_end_hour
        self._window = WorkWindow.for_day(
            self._selected_date, work_start_hour, work_end_hour, timezone
        )
        self._calendar_id = calendar_id or ""
        self._auto_sync_minutes: float = 0
        self._last_sync_time: Optional[DateTime] = None

        self._events: List[BusyEvent] = []
        self._free_slots: List[TimeInterval] = []
        self._calendars: List[CalendarInfo] = []
        self._simulating = False
        self._simulated_window: Optional[WorkWindow] = None

        self._access_status = AccessStatus.UNKNOWN
        self._access_error: Optional[str] = None
        self._sync_error: Optional[str] = None
        self._last_error: Optional[FreeTimeError] = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def timezone(self) -> str:
        return self._timezone

    @property
    def selected_date(self) -> date:
        return self._selected_date

    @property
    def work_start_hour(self) -> int:
        return self._work_start_hour

    @property
    def work_end_hour(self) -> int:
        return self._work_end_hour

    @property
    def window(self) -> Optional[WorkWindow]:
        """Working window of the selected date, None if it cannot be resolved."""
        return self._window

    @property
    def calendar_id(self) -> str:
        return self._calendar_id

    @property
    def auto_sync_minutes(self) -> float:
        return self._auto_sync_minutes

    @property
    def auto_sync_running(self) -> bool:
        return self._auto_sync_task is not None and not self._auto_sync_task.done()

    @property
    def last_sync_time(self) -> Optional[DateTime]:
        return self._last_sync_time

    @property
    def events(self) -> List[BusyEvent]:
        return list(self._events)

    @property
    def free_slots(self) -> List[TimeInterval]:
        return list(self._free_slots)

    @property
    def calendars(self) -> List[CalendarInfo]:
        return list(self._calendars)

    @property
    def access_status(self) -> AccessStatus:
        return self._access_status

    @property
    def access_granted(self) -> bool:
        return self._access_status is AccessStatus.GRANTED

    @property
    def access_error(self) -> Optional[str]:
        return self._access_error

    @property
    def sync_error(self) -> Optional[str]:
        return self._sync_error

    @property
    def last_error(self) -> Optional[FreeTimeError]:
        """The most recent error the session recovered from."""
        return self._last_error

    @property
    def simulated(self) -> bool:
        return self._simulating

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            selected_date=self._selected_date,
            work_start_hour=self._work_start_hour,
            work_end_hour=self._work_end_hour,
            calendar_id=self._calendar_id,
            auto_sync_minutes=self._auto_sync_minutes,
            last_sync_time=self._last_sync_time,
            window=self._active_window(),
            events=tuple(self._events),
            free_slots=tuple(self._free_slots),
            calendars=tuple(self._calendars),
            access_status=self._access_status,
            access_error=self._access_error,
            sync_error=self._sync_error,
            simulated=self._simulating,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def set_work_window(self, day: date, start_hour: int, end_hour: int) -> bool:
        """
        Select a date and working hours, then re-fetch and recompute.

        If the hours cannot be resolved to a window the free slots are
        cleared, the events are left as they are and no error is recorded.

        Returns:
            True if events were fetched for the new window
        """
        async with self._lock:
            self._selected_date = day
            self._work_start_hour = start_hour
            self._work_end_hour = end_hour
            self._window = WorkWindow.for_day(day, start_hour, end_hour, self._timezone)
            self._simulating = False
            self._simulated_window = None

            if self._window is None:
                logger.info(
                    "Working window %s %d:00-%d:00 cannot be resolved",
                    day, start_hour, end_hour,
                )
                self._recompute()
                return False

            return await self._reload()

    async def set_calendar_filter(self, calendar_id: Optional[str]) -> bool:
        """Restrict the session to one calendar (empty = all), then re-fetch."""
        async with self._lock:
            self._calendar_id = calendar_id or ""
            self._simulating = False
            self._simulated_window = None
            return await self._reload()

    async def refresh(self) -> bool:
        """
        Re-fetch events for the current window and filter and recompute.

        A provider failure is recorded on the session; the previously
        computed events and free slots are kept.

        Returns:
            True if fresh events were fetched
        """
        async with self._lock:
            fetched = await self._reload()
            if fetched:
                self._last_sync_time = self._clock()
            return fetched

    async def sync_now(self) -> bool:
        """Reload the calendar catalog, then refresh."""
        started = time.perf_counter()
        logger.info("Sync started")

        async with self._lock:
            await self._load_calendars()
            fetched = await self._reload()
            if fetched:
                self._last_sync_time = self._clock()

        logger.info(
            "Sync finished: %d calendars, %d events in %.2fs",
            len(self._calendars), len(self._events), time.perf_counter() - started,
        )
        return fetched

    async def simulate(self, interval: TimeInterval, label: str = SIMULATED_EVENT_TITLE) -> None:
        """
        Preview a single synthetic event filling the given interval.

        Replaces the events and computes free time against a window equal to
        the interval. Nothing is fetched or persisted and the last sync time
        is left alone.
        """
        async with self._lock:
            try:
                window = WorkWindow(start=interval.start, end=interval.end)
            except InvalidWindowError:
                window = None

            self._simulating = True
            self._simulated_window = window
            self._events = [BusyEvent(start=interval.start, end=interval.end, title=label)]
            self._recompute()

    async def request_access(self) -> AccessResult:
        """Ask the access provider for read access and record the outcome."""
        async with self._lock:
            return await self._request_access()

    async def load_calendars(self) -> List[CalendarInfo]:
        """Load the calendar catalog, sorted for display."""
        async with self._lock:
            return await self._load_calendars()

    async def set_auto_sync(self, minutes: float) -> None:
        """
        Refresh now and then every ``minutes`` until disabled with 0.

        Any schedule already running is cancelled, and its cancellation
        awaited, before the new one starts.
        """
        if minutes < 0:
            raise ValueError(f"Auto-sync interval must not be negative, got {minutes}")

        async with self._auto_sync_lock:
            await self._cancel_auto_sync()
            self._auto_sync_minutes = minutes

            if minutes == 0:
                logger.info("Auto-sync disabled")
                return

            self._auto_sync_task = asyncio.create_task(self._auto_sync_loop(minutes * 60))
            logger.info("Auto-sync enabled (every %s min)", minutes)

    async def close(self) -> None:
        """Cancel background work. Safe to call more than once."""
        async with self._auto_sync_lock:
            await self._cancel_auto_sync()
            self._auto_sync_minutes = 0

    async def __aenter__(self) -> "ScheduleSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internals (callers hold the lock)
    # ------------------------------------------------------------------

    def _active_window(self) -> Optional[WorkWindow]:
        if self._simulating:
            return self._simulated_window
        return self._window

    def _derive_free_slots(self, events: Sequence[BusyEvent]) -> List[TimeInterval]:
        if not self._simulating and not self.access_granted:
            return []
        return compute_free_time(self._active_window(), [event.interval for event in events])

    def _recompute(self) -> None:
        self._free_slots = self._derive_free_slots(self._events)

    def _apply_events(self, events: Sequence[BusyEvent]) -> None:
        self._simulating = False
        self._simulated_window = None
        self._events = sorted(events, key=lambda event: event.start)
        self._recompute()

    async def _reload(self) -> bool:
        if not self.access_granted:
            await self._request_access()

        if not self.access_granted:
            self._apply_events([])
            return False

        window = self._window
        if window is None:
            self._recompute()
            return False

        try:
            fetched = await self._event_provider.fetch_busy(window, self._calendar_id or None)
        except ProviderFailure as exc:
            logger.warning("Fetching events for %s failed: %s", window, exc.message)
            self._sync_error = exc.message
            self._last_error = exc
            self._recompute()
            return False

        self._sync_error = None
        self._apply_events(fetched)
        logger.debug(
            "Fetched %d events for %s, %d free slots",
            len(self._events), window, len(self._free_slots),
        )
        return True

    async def _request_access(self) -> AccessResult:
        status = self._access_provider.authorization_status()

        if status.is_terminal:
            result = AccessResult(status=status)
        else:
            self._access_status = AccessStatus.PROMPT_PENDING
            try:
                result = await self._access_provider.request_access()
            except BaseException:
                self._access_status = AccessStatus.UNKNOWN
                raise

            if not result.granted:
                result = AccessResult(
                    status=AccessStatus.DENIED,
                    error_message=result.error_message or PROMPT_REFUSED_MESSAGE,
                )

        error = result.to_error()
        self._access_status = result.status
        self._access_error = str(error) if error else None
        if error:
            self._last_error = error
            logger.info("Calendar access %s: %s", result.status.value, error)
        return result

    async def _load_calendars(self) -> List[CalendarInfo]:
        if self._calendar_catalog is None:
            return list(self._calendars)

        if not self.access_granted:
            await self._request_access()
        if not self.access_granted:
            return list(self._calendars)

        try:
            calendars = await self._calendar_catalog.list_calendars()
        except ProviderFailure as exc:
            logger.warning("Loading calendars failed: %s", exc.message)
            self._sync_error = exc.message
            self._last_error = exc
            return list(self._calendars)

        self._calendars = sort_calendars(calendars)
        return list(self._calendars)

    async def _cancel_auto_sync(self) -> None:
        task = self._auto_sync_task
        self._auto_sync_task = None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _auto_sync_loop(self, interval_seconds: float) -> None:
        """Background task refreshing the session until cancelled."""
        while True:
            try:
                if not await self.refresh():
                    logger.warning(
                        "Auto-sync cycle did not update events: %s",
                        self._sync_error or self._access_error or "no working window",
                    )
            except Exception as exc:
                # Continue running even if a cycle fails
                logger.exception("Auto-sync cycle failed")
                self._sync_error = str(exc)

            await asyncio.sleep(interval_seconds)
