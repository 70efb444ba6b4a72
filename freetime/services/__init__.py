"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .schedule_session import (
    AccessProviderProtocol,
    CalendarCatalogProtocol,
    EventProviderProtocol,
    ScheduleSession,
    SessionSnapshot,
)

__all__ = [
    "AccessProviderProtocol",
    "CalendarCatalogProtocol",
    "EventProviderProtocol",
    "ScheduleSession",
    "SessionSnapshot",
]
