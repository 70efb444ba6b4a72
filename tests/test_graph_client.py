"""
Tests for the Microsoft Graph client, with the HTTP session mocked out.
"""

import asyncio
import threading
from datetime import date
from unittest.mock import MagicMock

import pendulum
import pytest
import requests

from freetime.adapters.graph_authenticator import GraphAccessProvider
from freetime.adapters.graph_client import GraphCalendarProvider, GraphClient
from freetime.domain.exceptions import AuthenticationError, ProviderFailure
from freetime.domain.models import AccessStatus, WorkWindow

TZ = "Europe/Berlin"

CALENDARS_PAGE = {
    "value": [
        {"id": "cal-1", "name": "Calendar", "hexColor": "#1E90FF", "owner": {"name": "Ada", "address": "ada@example.com"}},
        {"id": "cal-2", "name": "Team", "color": "lightGreen", "owner": {"name": "Team"}},
    ]
}


def response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def graph_event(subject, start, end, show_as="busy", cancelled=False, tz=TZ):
    return {
        "subject": subject,
        "showAs": show_as,
        "isCancelled": cancelled,
        "start": {"dateTime": f"2024-11-25T{start}:00.0000000", "timeZone": tz},
        "end": {"dateTime": f"2024-11-25T{end}:00.0000000", "timeZone": tz},
    }


def make_client(*payloads):
    session = MagicMock()
    session.get.side_effect = [response(payload) for payload in payloads]
    return GraphClient(token_provider=lambda: "token", timezone=TZ, session=session), session


def window():
    return WorkWindow.for_day(date(2024, 11, 25), 9, 17, TZ)


class TestGetCalendars:
    """Tests for the calendar catalog."""

    def test_parse_calendars(self):
        client, session = make_client(CALENDARS_PAGE)

        calendars = client.get_calendars()

        assert [(cal.id, cal.title, cal.source_title, cal.color_hint) for cal in calendars] == [
            ("cal-1", "Calendar", "ada@example.com", "#1E90FF"),
            ("cal-2", "Team", "Team", "lightGreen"),
        ]
        headers = session.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer token"
        assert headers["Prefer"] == 'outlook.timezone="Europe/Berlin"'

    def test_follows_next_link(self):
        first = {"value": [{"id": "a", "name": "A"}], "@odata.nextLink": "https://graph.microsoft.com/v1.0/next"}
        second = {"value": [{"id": "b", "name": "B"}]}
        client, session = make_client(first, second)

        assert [cal.id for cal in client.get_calendars()] == ["a", "b"]
        assert session.get.call_args_list[1].args[0] == "https://graph.microsoft.com/v1.0/next"
        assert session.get.call_args_list[1].kwargs["params"] is None

    def test_request_error_becomes_provider_failure(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("network down")
        client = GraphClient(token_provider=lambda: "token", session=session)

        with pytest.raises(ProviderFailure, match="network down"):
            client.get_calendars()

    def test_authentication_error_becomes_provider_failure(self):
        def no_token():
            raise AuthenticationError("No cached token")

        client = GraphClient(token_provider=no_token, session=MagicMock())

        with pytest.raises(ProviderFailure, match="Not authenticated"):
            client.get_calendars()


class TestGetBusyEvents:
    """Tests for reading events through calendarView."""

    def test_events_from_all_calendars(self):
        client, session = make_client(
            CALENDARS_PAGE,
            {"value": [graph_event("Standup", "09:00", "09:15")]},
            {"value": [graph_event("Review", "14:00", "15:00")]},
        )

        events = client.get_busy_events(window())

        assert [(event.title, event.calendar_id, event.calendar_title) for event in events] == [
            ("Standup", "cal-1", "Calendar"),
            ("Review", "cal-2", "Team"),
        ]
        assert events[0].start == pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ)
        assert events[0].color_hint == "#1E90FF"

        params = session.get.call_args_list[1].kwargs["params"]
        assert session.get.call_args_list[1].args[0].endswith("/me/calendars/cal-1/calendarView")
        assert params["startDateTime"] == window().start.to_iso8601_string()
        assert params["endDateTime"] == window().end.to_iso8601_string()

    def test_single_calendar(self):
        client, session = make_client(CALENDARS_PAGE, {"value": [graph_event("Review", "14:00", "15:00")]})

        events = client.get_busy_events(window(), "cal-2")

        assert [event.calendar_id for event in events] == ["cal-2"]
        assert session.get.call_count == 2

    def test_unknown_calendar_uses_all(self):
        client, session = make_client(CALENDARS_PAGE, {"value": []}, {"value": []})

        assert client.get_busy_events(window(), "gone") == []
        assert session.get.call_count == 3

    def test_free_and_cancelled_events_are_skipped(self):
        client, _ = make_client(
            {"value": [{"id": "cal-1", "name": "Calendar"}]},
            {
                "value": [
                    graph_event("Busy", "09:00", "10:00"),
                    graph_event("Free", "10:00", "11:00", show_as="free"),
                    graph_event("Cancelled", "11:00", "12:00", cancelled=True),
                    graph_event("Out of office", "13:00", "14:00", show_as="oof"),
                    graph_event("Tentative", "15:00", "16:00", show_as="tentative"),
                ]
            },
        )

        events = client.get_busy_events(window())

        assert [event.title for event in events] == ["Busy", "Out of office", "Tentative"]

    def test_utc_times_are_converted(self):
        client, _ = make_client(
            {"value": [{"id": "cal-1", "name": "Calendar"}]},
            {"value": [graph_event("Call", "08:00", "09:00", tz="UTC")]},
        )

        event = client.get_busy_events(window())[0]

        assert event.start == pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ)
        assert event.start.timezone_name == TZ

    def test_malformed_event_is_skipped(self):
        broken = {"subject": "Broken", "showAs": "busy", "start": {"dateTime": "not a date"}}
        client, _ = make_client(
            {"value": [{"id": "cal-1", "name": "Calendar"}]},
            {"value": [broken, graph_event("Fine", "10:00", "11:00")]},
        )

        assert [event.title for event in client.get_busy_events(window())] == ["Fine"]


class TestGraphCalendarProvider:
    """Tests for the async provider wrapper."""

    def test_fetch_busy(self):
        client, _ = make_client(
            {"value": [{"id": "cal-1", "name": "Calendar"}]},
            {"value": [graph_event("Standup", "09:00", "09:15")]},
        )
        provider = GraphCalendarProvider(client)

        events = asyncio.run(provider.fetch_busy(window(), None))

        assert [event.title for event in events] == ["Standup"]

    def test_failure_propagates(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.Timeout("timed out")
        provider = GraphCalendarProvider(GraphClient(token_provider=lambda: "token", session=session))

        with pytest.raises(ProviderFailure):
            asyncio.run(provider.list_calendars())


class TestGraphAccessProvider:
    """Tests for mapping Microsoft sign-in onto access states."""

    def test_status_check_does_no_token_lookup(self):
        """The synchronous status check only reports the last known outcome."""
        authenticator = MagicMock()
        authenticator.get_cached_token.return_value = "cached"

        assert GraphAccessProvider(authenticator).authorization_status() is AccessStatus.UNKNOWN
        authenticator.get_cached_token.assert_not_called()
        authenticator.get_access_token.assert_not_called()

    def test_token_lookup_runs_off_the_event_loop(self):
        authenticator = MagicMock()
        lookup_threads = []

        def get_access_token():
            lookup_threads.append(threading.current_thread())
            return "cached"

        authenticator.get_access_token.side_effect = get_access_token
        provider = GraphAccessProvider(authenticator)

        assert asyncio.run(provider.request_access()).granted
        assert lookup_threads and lookup_threads[0] is not threading.main_thread()
        assert provider.authorization_status() is AccessStatus.GRANTED

    def test_failed_sign_in_is_denied(self):
        authenticator = MagicMock()
        authenticator.get_cached_token.return_value = None
        authenticator.get_access_token.side_effect = AuthenticationError("Authentication failed: user declined")
        provider = GraphAccessProvider(authenticator)

        result = asyncio.run(provider.request_access())

        assert result.status is AccessStatus.DENIED
        assert result.error_message == "Authentication failed: user declined"
        assert provider.authorization_status() is AccessStatus.DENIED

    def test_successful_sign_in(self):
        authenticator = MagicMock()
        authenticator.get_access_token.return_value = "token"
        provider = GraphAccessProvider(authenticator)

        assert asyncio.run(provider.request_access()).granted
