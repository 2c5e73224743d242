"""
Microsoft Graph API adapter for Outlook / Microsoft 365 calendars.
"""

import logging
import re
from typing import Any, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import CommitmentInterval, CommitmentKind
from .calendar_adapter import CalendarCredentials

logger = logging.getLogger(__name__)


class MicrosoftCalendarAdapter:
    """
    Calendar adapter backed by Microsoft Graph.

    Uses ``/me/calendarview`` to expand recurring events into instances and
    ``/me/events`` to export bookings.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    # showAs values treated as busy time
    BUSY_STATUSES = {"busy", "oof"}

    name = "microsoft"
    display_name = "Microsoft"

    def __init__(self, timeout: float = 30):
        self.timeout = timeout

    def _headers(self, credentials: CalendarCredentials) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json",
            "Prefer": 'outlook.timezone="UTC"'
        }

    def has_conflict(self, credentials: CalendarCredentials, start: DateTime, end: DateTime) -> bool:
        events = self._get_calendar_view(credentials, start, end)
        return any(self._is_busy(event) for event in events)

    def import_events(
        self,
        credentials: CalendarCredentials,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[CommitmentInterval]:
        """
        Fetch busy events in the window as external commitments.

        Events that cannot be parsed are skipped with a warning.
        """
        commitments: List[CommitmentInterval] = []

        for event in self._get_calendar_view(credentials, window_start, window_end):
            if not self._is_busy(event):
                continue

            try:
                commitments.append(
                    CommitmentInterval(
                        id=f"ms_{event['id']}",
                        start=self._parse_datetime(event["start"]),
                        end=self._parse_datetime(event["end"]),
                        kind=CommitmentKind.EXTERNAL,
                        source=self.name,
                        title=event.get("subject") or "Microsoft Calendar Event",
                        external_id=event["id"]
                    )
                )
            except (KeyError, ValueError) as e:
                logger.warning("Could not parse Microsoft calendar event: %s", e)
                continue

        return commitments

    def export_event(self, credentials: CalendarCredentials, commitment: CommitmentInterval) -> str:
        """Create the commitment via ``POST /me/events`` and return the Graph id."""
        payload = {
            "subject": commitment.title or "Booking",
            "body": {
                "contentType": "text",
                "content": commitment.description or ""
            },
            "start": {
                "dateTime": commitment.start.in_timezone("UTC").format("YYYY-MM-DD[T]HH:mm:ss"),
                "timeZone": "UTC"
            },
            "end": {
                "dateTime": commitment.end.in_timezone("UTC").format("YYYY-MM-DD[T]HH:mm:ss"),
                "timeZone": "UTC"
            },
            "showAs": "busy"
        }

        try:
            response = requests.post(
                f"{self.GRAPH_API_ENDPOINT}/me/events",
                headers=self._headers(credentials),
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()["id"]
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Failed to export event to Microsoft Graph: {e}") from e

    def _get_calendar_view(
        self,
        credentials: CalendarCredentials,
        start: DateTime,
        end: DateTime
    ) -> List[Dict[str, Any]]:
        """
        Query the calendar view between two instants.

        Response format:
        {
            "value": [
                {
                    "id": "AAMk...",
                    "subject": "Dentist",
                    "showAs": "busy",
                    "start": {"dateTime": "2024-01-15T10:00:00.0000000", "timeZone": "UTC"},
                    "end": {"dateTime": "2024-01-15T11:00:00.0000000", "timeZone": "UTC"}
                }
            ]
        }
        """
        params = {
            "startDateTime": start.in_timezone("UTC").to_iso8601_string(),
            "endDateTime": end.in_timezone("UTC").to_iso8601_string(),
            "$select": "id,subject,start,end,showAs",
            "$top": 250
        }

        try:
            response = requests.get(
                f"{self.GRAPH_API_ENDPOINT}/me/calendarview",
                headers=self._headers(credentials),
                params=params,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Failed to fetch calendar view from Microsoft Graph: {e}") from e

        return data.get("value", [])

    def _is_busy(self, event: Dict[str, Any]) -> bool:
        return str(event.get("showAs", "")).lower() in self.BUSY_STATUSES

    def _parse_datetime(self, value: Dict[str, str]) -> DateTime:
        """
        Parse a Graph ``dateTimeTimeZone`` object to a pendulum DateTime.

        Graph sends the wall-clock time without an offset next to the zone name,
        with seven fractional digits; only microseconds are kept.
        """
        raw = re.sub(r"(\.\d{6})\d+", r"\1", value["dateTime"])
        dt = pendulum.parse(raw, tz=value.get("timeZone") or "UTC")

        if isinstance(dt, DateTime):
            return dt

        raise ValueError(f"Could not parse datetime: {value['dateTime']}")

    def test_connection(self, credentials: CalendarCredentials) -> Dict[str, Any]:
        """
        Fetch the signed-in user's profile.

        Raises:
            CalendarAPIError: If the request fails
        """
        try:
            response = requests.get(
                f"{self.GRAPH_API_ENDPOINT}/me",
                headers=self._headers(credentials),
                timeout=10
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Connection test failed: {e}") from e
