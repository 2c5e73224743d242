"""
Application service tying availability, detection and alternatives together.

The CLI and the booking write path talk to ``SchedulingService`` only; the
pieces behind it stay individually testable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from pendulum import DateTime

from ..adapters.calendar_adapter import CalendarConnection
from ..adapters.store import AvailabilityRepository
from ..domain.booking_policy import evaluate_policy
from ..domain.models import (
    AlternativeSlot,
    AvailabilityReport,
    CandidateSlot,
    Clock,
    ConflictResult,
    TimeRange,
    utc_now,
)
from ..domain.slot_generator import SlotGenerator
from .alternative_finder import AlternativeSlotFinder
from .availability_store import AvailabilityStore
from .conflict_detector import ConflictDetector

logger = logging.getLogger(__name__)

NEXT_SLOT_SEARCH_DAYS = 30


class SchedulingService:
    """
    Orchestrates slot generation, conflict checks and alternative search.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        detector: ConflictDetector,
        alternative_finder: AlternativeSlotFinder,
        slot_generator: SlotGenerator,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.detector = detector
        self._alternative_finder = alternative_finder
        self._slot_generator = slot_generator
        self._clock = clock

    @classmethod
    def build(
        cls,
        repository: AvailabilityRepository,
        connections: Optional[Dict[str, Sequence[CalendarConnection]]] = None,
        *,
        adapter_timeout: float = 5.0,
        store_timeout: float = 5.0,
        clock: Clock = utc_now,
    ) -> "SchedulingService":
        """Wire the default collaborators around a repository."""
        store = AvailabilityStore(repository)
        generator = SlotGenerator()
        detector = ConflictDetector(
            store,
            connections,
            adapter_timeout=adapter_timeout,
            store_timeout=store_timeout,
            slot_generator=generator,
            clock=clock,
        )
        finder = AlternativeSlotFinder(detector, store, clock=clock)
        return cls(store, detector, finder, generator, clock=clock)

    async def generate_slots(
        self,
        provider_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[CandidateSlot]:
        """Candidate slots from the provider's windows and internal ledger."""
        snapshot = await asyncio.to_thread(self.store.snapshot, provider_id, range_start, range_end)
        return self._slot_generator.generate(snapshot, range_start, range_end, self._clock())

    async def check(
        self,
        provider_id: str,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str] = None,
    ) -> ConflictResult:
        return await self.detector.check(provider_id, candidate, exclude_commitment_id)

    async def find_alternatives(
        self,
        provider_id: str,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str] = None,
    ) -> List[AlternativeSlot]:
        return await self._alternative_finder.find_alternatives(provider_id, candidate, exclude_commitment_id)

    async def get_availability(
        self,
        provider_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> AvailabilityReport:
        return await self.detector.get_availability(provider_id, range_start, range_end)

    async def validate_booking(
        self,
        provider_id: str,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str] = None,
    ) -> ConflictResult:
        """
        Full verdict for a booking request.

        Policy violations (notice period, advance limit, working hours,
        blackouts) come first, followed by every conflicting commitment.
        When anything is found, up to three alternatives are attached.
        """
        config = await asyncio.to_thread(self.store.get_config, provider_id)
        violations = evaluate_policy(config, candidate, self._clock())

        result = await self.detector.check(provider_id, candidate, exclude_commitment_id)
        result.sources[:0] = violations

        if result.has_conflict:
            result.alternatives = await self._alternative_finder.find_alternatives(
                provider_id, candidate, exclude_commitment_id
            )
            logger.info(
                "Booking request for %s at %s rejected (%d reason(s), %d alternative(s))",
                provider_id,
                candidate,
                len(result.sources),
                len(result.alternatives)
            )

        return result

    async def next_available_slot(
        self,
        provider_id: str,
        after: DateTime,
        duration_minutes: int = 60,
    ) -> Optional[CandidateSlot]:
        """
        First slot within the next 30 days that is long enough and free in
        every source, or None.
        """
        slots = await self.generate_slots(provider_id, after, after.add(days=NEXT_SLOT_SEARCH_DAYS))

        for slot in slots:
            if not slot.available or slot.start < after or slot.duration_minutes < duration_minutes:
                continue
            result = await self.detector.check(provider_id, slot.time_range)
            if not result.has_conflict:
                return slot

        return None
