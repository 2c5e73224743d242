"""
Import from and export to connected calendars and iCalendar files.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pendulum import DateTime

from ..adapters.calendar_adapter import CalendarConnection
from ..adapters.ics import IcsEvent, export_ics, parse_ics_events
from ..domain.exceptions import SlotEngineError
from ..domain.models import CommitmentInterval, CommitmentKind
from .availability_store import AvailabilityStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    imported: int = 0
    exported: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class CalendarSyncService:
    """
    Copies events between the ledger and external calendars.

    Imported events are stored as ``external`` commitments so the conflict
    detector sees them through the internal ledger. Failures are collected in
    the ``SyncResult`` instead of aborting the whole run.
    """

    def __init__(self, store: AvailabilityStore) -> None:
        self._store = store

    @property
    def _repository(self):
        return self._store.repository

    def _known_external_ids(self, provider_id: str, source: str) -> set:
        return {
            c.external_id
            for c in self._store.query_commitments(provider_id, kinds={CommitmentKind.EXTERNAL})
            if c.source == source and c.external_id
        }

    def _import_commitments(
        self,
        provider_id: str,
        source: str,
        commitments: List[CommitmentInterval],
        result: SyncResult,
    ) -> None:
        known = self._known_external_ids(provider_id, source)
        for commitment in commitments:
            if commitment.external_id and commitment.external_id in known:
                continue
            try:
                self._repository.add_commitment(provider_id, commitment)
            except SlotEngineError as e:
                result.errors.append(f"{commitment.id}: {e}")
                continue
            if commitment.external_id:
                known.add(commitment.external_id)
            result.imported += 1

    async def import_events(
        self,
        provider_id: str,
        connection: CalendarConnection,
        window_start: DateTime,
        window_end: DateTime,
    ) -> SyncResult:
        """Pull busy events from a connected calendar into the ledger."""
        result = SyncResult()
        try:
            events = await asyncio.to_thread(
                connection.adapter.import_events, connection.credentials, window_start, window_end
            )
        except SlotEngineError as e:
            logger.warning("Import from %s failed for %s: %s", connection.name, provider_id, e)
            result.errors.append(str(e))
            return result

        await asyncio.to_thread(self._import_commitments, provider_id, connection.name, events, result)
        logger.info("Imported %d event(s) from %s for %s", result.imported, connection.name, provider_id)
        return result

    def import_ics(self, provider_id: str, text: str, source: str = "ics") -> SyncResult:
        """
        Store the events of an iCalendar document as external commitments.

        Raises:
            ValueError: If the text is not an iCalendar document
        """
        config = self._store.get_config(provider_id)
        result = SyncResult()
        commitments: List[CommitmentInterval] = []

        for index, event in enumerate(parse_ics_events(text, default_timezone=config.timezone)):
            if event.end <= event.start:
                result.errors.append(f"Event '{event.title}' ends before it starts")
                continue
            external_id = event.uid or f"{event.start.to_iso8601_string()}-{index}"
            commitments.append(
                CommitmentInterval(
                    id=f"{source}_{external_id}",
                    start=event.start,
                    end=event.end,
                    kind=CommitmentKind.EXTERNAL,
                    source=source,
                    title=event.title or "Busy",
                    description=event.description or None,
                    external_id=external_id,
                )
            )

        self._import_commitments(provider_id, source, commitments, result)
        logger.info("Imported %d event(s) from calendar file for %s", result.imported, provider_id)
        return result

    async def export_bookings(
        self,
        provider_id: str,
        connection: CalendarConnection,
        window_start: DateTime,
        window_end: DateTime,
    ) -> SyncResult:
        """
        Create confirmed bookings in a connected calendar.

        Bookings that already carry an ``external_id`` were exported before
        and are skipped.
        """
        result = SyncResult()
        bookings = await asyncio.to_thread(
            self._store.query_commitments,
            provider_id,
            start=window_start,
            end=window_end,
            kinds={CommitmentKind.BOOKING},
            statuses={"confirmed"},
        )

        for booking in bookings:
            if booking.external_id:
                continue
            try:
                external_id = await asyncio.to_thread(
                    connection.adapter.export_event, connection.credentials, booking
                )
                await asyncio.to_thread(
                    self._repository.replace_commitment,
                    provider_id,
                    dataclasses.replace(booking, external_id=external_id),
                )
            except SlotEngineError as e:
                logger.warning("Export of %s to %s failed: %s", booking.id, connection.name, e)
                result.errors.append(f"{booking.id}: {e}")
                continue
            result.exported += 1

        logger.info("Exported %d booking(s) to %s for %s", result.exported, connection.name, provider_id)
        return result

    def export_ics(
        self,
        provider_id: str,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
        stamp: Optional[DateTime] = None,
    ) -> str:
        """Calendar file with the provider's time-consuming commitments."""
        commitments = [
            c for c in self._store.query_commitments(provider_id, start=start, end=end)
            if c.blocks_time
        ]
        return export_ics([IcsEvent.from_commitment(c) for c in commitments], stamp=stamp)
