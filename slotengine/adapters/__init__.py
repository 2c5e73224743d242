"""
Adapters layer - persistence, external calendars and calendar files.
"""

from .calendar_adapter import CalendarConnection, CalendarCredentials, CalendarProviderAdapter
from .google_calendar import GoogleCalendarAdapter
from .graph_authenticator import GraphAuthenticator
from .json_store import JsonFileStore
from .memory_store import InMemoryStore
from .microsoft_calendar import MicrosoftCalendarAdapter
from .mock_calendar import MockCalendarAdapter
from .store import AvailabilityRepository

__all__ = [
    "AvailabilityRepository",
    "CalendarConnection",
    "CalendarCredentials",
    "CalendarProviderAdapter",
    "GoogleCalendarAdapter",
    "GraphAuthenticator",
    "InMemoryStore",
    "JsonFileStore",
    "MicrosoftCalendarAdapter",
    "MockCalendarAdapter",
]
