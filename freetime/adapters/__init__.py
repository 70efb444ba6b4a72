"""
Adapters layer - External integrations (Microsoft Graph API, mock data).
"""

from .graph_authenticator import GraphAccessProvider, GraphAuthenticator
from .graph_client import GraphCalendarProvider, GraphClient
from .mock_calendar import MockAccessProvider, MockCalendarProvider

__all__ = [
    "GraphAccessProvider",
    "GraphAuthenticator",
    "GraphCalendarProvider",
    "GraphClient",
    "MockAccessProvider",
    "MockCalendarProvider",
]
