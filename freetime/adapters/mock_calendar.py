"""
Mock calendar provider for running without Microsoft authentication.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ProviderFailure
from ..domain.models import AccessResult, AccessStatus, BusyEvent, CalendarInfo, TimeInterval

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockCalendarProvider:
    """
    Provider that serves calendars and events from a JSON document.

    Event times are either full ISO 8601 datetimes or plain ``HH:mm`` times,
    which repeat on every requested day (optionally only on the listed
    ``weekdays``, 0=Monday). Data format:

    {
        "calendars": [{"id": "work", "title": "Work", "source": "Exchange", "color": "#1E90FF"}],
        "events": [{"calendarId": "work", "title": "Standup", "start": "09:00", "end": "09:15"}]
    }
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        timezone: str = "Europe/Berlin",
        data: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the mock provider.

        Args:
            data_file: JSON file to load; defaults to the bundled sample data
            timezone: IANA timezone for times without an offset
            data: Already loaded document, takes precedence over data_file
        """
        self.timezone = timezone
        self.data_file = data_file or DEFAULT_DATA_FILE
        document = data if data is not None else self._load_document()

        self._calendars = [self._parse_calendar(item) for item in document.get("calendars", [])]
        self._events: List[Dict[str, Any]] = list(document.get("events", []))

    def _load_document(self) -> Dict[str, Any]:
        """Load mock calendar data from the JSON file."""
        if not self.data_file.exists():
            logger.warning("Mock data file %s not found, serving no events", self.data_file)
            return {}

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            raise ProviderFailure(f"Could not read mock data {self.data_file}: {exc}") from exc

    @staticmethod
    def _parse_calendar(item: Dict[str, Any]) -> CalendarInfo:
        return CalendarInfo(
            id=item["id"],
            title=item.get("title", item["id"]),
            source_title=item.get("source", ""),
            color_hint=item.get("color"),
        )

    async def list_calendars(self) -> List[CalendarInfo]:
        return list(self._calendars)

    async def fetch_busy(self, window: TimeInterval, calendar_id: Optional[str]) -> List[BusyEvent]:
        """Return the events that overlap the window."""
        calendars = {cal.id: cal for cal in self._calendars}
        if calendar_id and calendar_id not in calendars:
            logger.warning("Calendar %s not found, using all calendars", calendar_id)
            calendar_id = None

        busy: List[BusyEvent] = []
        for item in self._events:
            item_calendar = item.get("calendarId")
            if calendar_id and item_calendar != calendar_id:
                continue

            for start, end in self._occurrences(item, window):
                if start < window.end and end > window.start:
                    calendar = calendars.get(item_calendar)
                    busy.append(
                        BusyEvent(
                            start=start,
                            end=end,
                            title=item.get("title"),
                            calendar_id=item_calendar,
                            calendar_title=calendar.title if calendar else None,
                            color_hint=calendar.color_hint if calendar else None,
                        )
                    )

        return busy

    def _occurrences(self, item: Dict[str, Any], window: TimeInterval) -> List[tuple]:
        try:
            if "T" in item["start"]:
                start = self._parse(item["start"])
                end = self._parse(item["end"])
                return [(start, end)] if start <= end else []

            occurrences = []
            weekdays = item.get("weekdays")
            day = window.start.in_timezone(self.timezone).start_of("day")
            while day < window.end:
                if weekdays is None or day.day_of_week in weekdays:
                    start = self._at_time(day, item["start"])
                    end = self._at_time(day, item["end"])
                    if start <= end:
                        occurrences.append((start, end))
                day = day.add(days=1)
            return occurrences
        except (KeyError, ValueError) as exc:
            logger.warning("Skipping invalid mock event %r: %s", item.get("title"), exc)
            return []

    def _parse(self, value: str) -> DateTime:
        dt = pendulum.parse(value, tz=self.timezone)
        if not isinstance(dt, DateTime):
            raise ValueError(f"Could not parse datetime: {value}")
        return dt

    @staticmethod
    def _at_time(day: DateTime, value: str) -> DateTime:
        hour, minute = (int(part) for part in value.split(":"))
        return day.set(hour=hour, minute=minute)


class MockAccessProvider:
    """
    Access provider with a fixed outcome.

    ``status`` is what the platform reports before prompting; when it is
    UNKNOWN, ``prompt_result`` decides the outcome of the prompt.
    """

    def __init__(
        self,
        status: AccessStatus = AccessStatus.GRANTED,
        prompt_result: AccessStatus = AccessStatus.GRANTED,
        error_message: Optional[str] = None,
    ):
        self.status = status
        self.prompt_result = prompt_result
        self.error_message = error_message
        self.prompt_count = 0

    def authorization_status(self) -> AccessStatus:
        return self.status

    async def request_access(self) -> AccessResult:
        self.prompt_count += 1
        self.status = self.prompt_result
        return AccessResult(status=self.prompt_result, error_message=self.error_message)
