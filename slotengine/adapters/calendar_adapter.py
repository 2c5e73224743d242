"""
Contract for external calendar ecosystems (Microsoft 365, Google, ...).
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import CommitmentInterval


@dataclass(frozen=True)
class CalendarCredentials:
    """Access material for one connected calendar account."""
    access_token: str
    refresh_token: Optional[str] = None
    calendar_id: str = "primary"


class CalendarProviderAdapter(Protocol):
    """
    Behaviour the engine needs from an external calendar.

    Only ``has_conflict`` is used on the detection path; event detail is
    best-effort and never required.
    """

    name: str
    display_name: str

    def has_conflict(self, credentials: CalendarCredentials, start: DateTime, end: DateTime) -> bool:
        """Return True if anything busy overlaps ``[start, end)``."""

    def import_events(
        self,
        credentials: CalendarCredentials,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[CommitmentInterval]:
        """Return busy events in the window as external commitments."""

    def export_event(self, credentials: CalendarCredentials, commitment: CommitmentInterval) -> str:
        """Create the commitment in the external calendar and return its id there."""


@dataclass(frozen=True)
class CalendarConnection:
    """A provider's link to one external calendar."""
    adapter: CalendarProviderAdapter
    credentials: CalendarCredentials

    @property
    def name(self) -> str:
        return self.adapter.name
