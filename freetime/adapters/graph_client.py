"""
Microsoft Graph API client for reading calendars and events.
"""

import asyncio
import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import AuthenticationError, ProviderFailure
from ..domain.models import BusyEvent, CalendarInfo, TimeInterval

logger = logging.getLogger(__name__)

# Graph "showAs" values that block time
BUSY_STATUSES = {"busy", "tentative", "oof", "workingelsewhere"}

# Graph sends seven fractional digits; datetimes carry at most six
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


class GraphClient:
    """
    Client for Microsoft Graph API calendar operations.

    Uses /me/calendars for the catalog and the calendarView endpoint of each
    calendar for events, so recurring events arrive already expanded.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"
    PAGE_SIZE = 100

    def __init__(
        self,
        token_provider: Callable[[], str],
        timezone: str = "Europe/Berlin",
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Graph API client.

        Args:
            token_provider: Callable returning a valid access token
            timezone: IANA timezone the events are returned in
            session: Optional requests session (shared connection pool)
        """
        self._token_provider = token_provider
        self.timezone = timezone
        self._http = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        try:
            token = self._token_provider()
        except AuthenticationError as e:
            raise ProviderFailure(f"Not authenticated with Microsoft Graph: {e}") from e

        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": f'outlook.timezone="{self.timezone}"',
        }

    def _get_pages(self, url: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield the items of a paged collection, following @odata.nextLink."""
        next_url: Optional[str] = url

        while next_url:
            try:
                response = self._http.get(next_url, headers=self._headers(), params=params, timeout=30)
                response.raise_for_status()
                data = response.json()
            except requests.exceptions.RequestException as e:
                raise ProviderFailure(f"Microsoft Graph request failed: {e}") from e
            except ValueError as e:
                raise ProviderFailure(f"Microsoft Graph returned invalid JSON: {e}") from e

            yield from data.get("value", [])

            next_url = data.get("@odata.nextLink")
            # The next link already carries the query
            params = None

    # ------------------------------------------------------------------
    # Calendar catalog
    # ------------------------------------------------------------------

    def get_calendars(self) -> List[CalendarInfo]:
        """
        Fetch all calendars of the signed-in user.

        Raises:
            ProviderFailure: If the API call fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendars"
        params = {"$select": "id,name,hexColor,color,owner", "$top": self.PAGE_SIZE}

        return [self._parse_calendar(item) for item in self._get_pages(url, params)]

    @staticmethod
    def _parse_calendar(item: Dict[str, Any]) -> CalendarInfo:
        owner = item.get("owner") or {}
        return CalendarInfo(
            id=item.get("id", ""),
            title=item.get("name", ""),
            source_title=owner.get("address") or owner.get("name") or "",
            color_hint=item.get("hexColor") or item.get("color"),
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def get_busy_events(self, window: TimeInterval, calendar_id: Optional[str] = None) -> List[BusyEvent]:
        """
        Fetch the events that block time inside the window.

        A calendar_id restricts the query to that calendar. An id that does
        not name a known calendar falls back to all calendars.

        Raises:
            ProviderFailure: If an API call fails
        """
        calendars = self.get_calendars()

        if calendar_id:
            selected = [cal for cal in calendars if cal.id == calendar_id]
            if not selected:
                logger.warning("Calendar %s not found, using all calendars", calendar_id)
                selected = calendars
        else:
            selected = calendars

        events: List[BusyEvent] = []
        for calendar in selected:
            events.extend(self._get_calendar_view(calendar, window))

        return events

    def _get_calendar_view(self, calendar: CalendarInfo, window: TimeInterval) -> List[BusyEvent]:
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendars/{calendar.id}/calendarView"
        params = {
            "startDateTime": window.start.to_iso8601_string(),
            "endDateTime": window.end.to_iso8601_string(),
            "$select": "subject,start,end,showAs,isCancelled",
            "$orderby": "start/dateTime",
            "$top": self.PAGE_SIZE,
        }

        events: List[BusyEvent] = []
        for item in self._get_pages(url, params):
            event = self._parse_event(item, calendar)
            if event is not None:
                events.append(event)
        return events

    def _parse_event(self, item: Dict[str, Any], calendar: CalendarInfo) -> Optional[BusyEvent]:
        """
        Parse a calendarView item into a BusyEvent.

        Item format:
        {
            "subject": "Standup",
            "showAs": "busy",
            "isCancelled": false,
            "start": {"dateTime": "2024-11-25T09:00:00.0000000", "timeZone": "Europe/Berlin"},
            "end": {"dateTime": "2024-11-25T09:15:00.0000000", "timeZone": "Europe/Berlin"}
        }

        Returns None for cancelled or free events and for items that cannot
        be parsed.
        """
        if item.get("isCancelled"):
            return None

        status = (item.get("showAs") or "busy").lower()
        if status not in BUSY_STATUSES:
            return None

        try:
            start = self._parse_datetime(item["start"])
            end = self._parse_datetime(item["end"])
            return BusyEvent(
                start=start,
                end=end,
                title=item.get("subject"),
                calendar_id=calendar.id,
                calendar_title=calendar.title,
                color_hint=calendar.color_hint,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Could not parse event %r: %s", item.get("subject"), e)
            return None

    def _parse_datetime(self, value: Dict[str, str]) -> DateTime:
        """
        Parse a Graph dateTimeTimeZone object into a pendulum DateTime in the
        client timezone.
        """
        raw = _EXCESS_FRACTION.sub(r"\1", value["dateTime"])
        dt = pendulum.parse(raw, tz=value.get("timeZone") or self.timezone)

        if isinstance(dt, DateTime):
            return dt.in_timezone(self.timezone)

        raise ValueError(f"Could not parse datetime: {value['dateTime']}")

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching user profile.

        Raises:
            ProviderFailure: If connection test fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me"

        try:
            response = self._http.get(url, headers=self._headers(), timeout=10)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise ProviderFailure(f"Connection test failed: {e}") from e


class GraphCalendarProvider:
    """Async event provider and calendar catalog on top of GraphClient."""

    def __init__(self, client: GraphClient):
        self._client = client

    async def fetch_busy(self, window: TimeInterval, calendar_id: Optional[str]) -> List[BusyEvent]:
        return await asyncio.to_thread(self._client.get_busy_events, window, calendar_id)

    async def list_calendars(self) -> List[CalendarInfo]:
        return await asyncio.to_thread(self._client.get_calendars)
