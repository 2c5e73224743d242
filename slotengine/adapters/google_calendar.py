"""
Google Calendar (v3 REST) adapter.
"""

import logging
from typing import Any, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import CommitmentInterval, CommitmentKind
from .calendar_adapter import CalendarCredentials

logger = logging.getLogger(__name__)


class GoogleCalendarAdapter:
    """
    Calendar adapter for Google Calendar.

    Transparent events ("show as available") and cancelled instances do not
    count as busy time.
    """

    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"

    name = "google"
    display_name = "Google"

    def __init__(self, timeout: float = 30):
        self.timeout = timeout

    def _headers(self, credentials: CalendarCredentials) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json"
        }

    def _events_url(self, credentials: CalendarCredentials) -> str:
        return f"{self.API_ENDPOINT}/calendars/{credentials.calendar_id}/events"

    def has_conflict(self, credentials: CalendarCredentials, start: DateTime, end: DateTime) -> bool:
        return any(self._is_busy(item) for item in self._list_events(credentials, start, end))

    def import_events(
        self,
        credentials: CalendarCredentials,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[CommitmentInterval]:
        commitments: List[CommitmentInterval] = []

        for item in self._list_events(credentials, window_start, window_end):
            if not self._is_busy(item):
                continue

            try:
                commitments.append(
                    CommitmentInterval(
                        id=f"gcal_{item['id']}",
                        start=self._parse_time(item["start"]),
                        end=self._parse_time(item["end"]),
                        kind=CommitmentKind.EXTERNAL,
                        source=self.name,
                        title=item.get("summary") or "Imported Event",
                        description=item.get("description"),
                        external_id=item["id"]
                    )
                )
            except (KeyError, ValueError) as e:
                logger.warning("Could not parse Google calendar event: %s", e)
                continue

        return commitments

    def export_event(self, credentials: CalendarCredentials, commitment: CommitmentInterval) -> str:
        body = {
            "summary": commitment.title or "Booking",
            "description": commitment.description or "",
            "start": {"dateTime": commitment.start.to_iso8601_string(), "timeZone": "UTC"},
            "end": {"dateTime": commitment.end.to_iso8601_string(), "timeZone": "UTC"},
        }

        try:
            response = requests.post(
                self._events_url(credentials),
                headers=self._headers(credentials),
                json=body,
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()["id"]
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Failed to export event to Google Calendar: {e}") from e

    def _list_events(
        self,
        credentials: CalendarCredentials,
        start: DateTime,
        end: DateTime
    ) -> List[Dict[str, Any]]:
        params = {
            "timeMin": start.in_timezone("UTC").to_iso8601_string(),
            "timeMax": end.in_timezone("UTC").to_iso8601_string(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": 250
        }

        try:
            response = requests.get(
                self._events_url(credentials),
                headers=self._headers(credentials),
                params=params,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Failed to list Google Calendar events: {e}") from e

        return data.get("items", [])

    @staticmethod
    def _is_busy(item: Dict[str, Any]) -> bool:
        return item.get("status") != "cancelled" and item.get("transparency") != "transparent"

    @staticmethod
    def _parse_time(value: Dict[str, str]) -> DateTime:
        """All-day events only carry ``date``; they start at midnight in their zone."""
        raw = value.get("dateTime") or value["date"]
        dt = pendulum.parse(raw, tz=value.get("timeZone") or "UTC")

        if isinstance(dt, DateTime):
            return dt

        raise ValueError(f"Could not parse datetime: {raw}")
