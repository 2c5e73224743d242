"""
Mock calendar adapter for running without any external account.
"""

import itertools
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.models import CommitmentInterval, CommitmentKind
from .calendar_adapter import CalendarCredentials


class MockCalendarAdapter:
    """
    Adapter that serves events from a JSON fixture.

    Each fixture entry looks like
    ``{"calendarId": "primary", "start": "...", "end": "...", "title": "..."}``.
    Exported events are kept in memory and show up in later queries.
    """

    name = "mock"
    display_name = "Mock"

    def __init__(self, data_file: Optional[Path] = None):
        self.data_file = data_file or Path(__file__).parent / "mock_calendar_data.json"
        self._ids = itertools.count(1)
        self._load_calendar_data()

    def _load_calendar_data(self):
        """Load mock calendar data from the JSON file."""
        if self.data_file.exists():
            with open(self.data_file, "r", encoding="utf-8") as f:
                self.calendar_events: List[Dict[str, Any]] = json.load(f)
        else:
            self.calendar_events = []

    def _events_between(
        self,
        credentials: CalendarCredentials,
        start: DateTime,
        end: DateTime
    ) -> List[Dict[str, Any]]:
        matches = []

        for index, event in enumerate(self.calendar_events):
            if event.get("calendarId", "primary") != credentials.calendar_id:
                continue

            try:
                event_start = pendulum.parse(event["start"])
                event_end = pendulum.parse(event["end"])
            except (KeyError, ValueError):
                continue

            if event_start < end and event_end > start:
                matches.append({
                    "id": event.get("id") or f"fixture_{index}",
                    "start": event_start,
                    "end": event_end,
                    "title": event.get("title", "Busy")
                })

        return matches

    def has_conflict(self, credentials: CalendarCredentials, start: DateTime, end: DateTime) -> bool:
        return bool(self._events_between(credentials, start, end))

    def import_events(
        self,
        credentials: CalendarCredentials,
        window_start: DateTime,
        window_end: DateTime
    ) -> List[CommitmentInterval]:
        return [
            CommitmentInterval(
                id=f"mock_{event['id']}",
                start=event["start"],
                end=event["end"],
                kind=CommitmentKind.EXTERNAL,
                source=self.name,
                title=event["title"],
                external_id=event["id"]
            )
            for event in self._events_between(credentials, window_start, window_end)
        ]

    def export_event(self, credentials: CalendarCredentials, commitment: CommitmentInterval) -> str:
        event_id = f"exported_{next(self._ids)}"
        self.calendar_events.append({
            "id": event_id,
            "calendarId": credentials.calendar_id,
            "start": commitment.start.to_iso8601_string(),
            "end": commitment.end.to_iso8601_string(),
            "title": commitment.title
        })
        return event_id
