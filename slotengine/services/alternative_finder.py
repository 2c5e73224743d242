"""
Suggests nearby free intervals when a requested booking conflicts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from ..domain.booking_policy import evaluate_policy
from ..domain.models import AlternativeSlot, Clock, Confidence, TimeRange, utc_now
from .availability_store import AvailabilityStore
from .conflict_detector import ConflictDetector

logger = logging.getLogger(__name__)

NEIGHBOUR_MINUTES = 60


class AlternativeSlotFinder:
    """
    Tries a fixed, short list of neighbours of the requested interval.

    Search order:
    1. The hour ending where the request starts (high confidence)
    2. The hour starting where the request ends (high confidence)
    3. The requested interval one day later (medium confidence)

    A neighbour is offered only if it respects the provider's booking policy
    and the conflict detector finds nothing. Results keep the search order.
    """

    MAX_ALTERNATIVES = 3

    def __init__(
        self,
        detector: ConflictDetector,
        store: AvailabilityStore,
        clock: Clock = utc_now,
    ) -> None:
        self._detector = detector
        self._store = store
        self._clock = clock

    async def find_alternatives(
        self,
        provider_id: str,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str] = None,
    ) -> List[AlternativeSlot]:
        config = await asyncio.to_thread(self._store.get_config, provider_id)
        now = self._clock()

        alternatives: List[AlternativeSlot] = []
        for option, confidence in self._neighbours(candidate):
            if evaluate_policy(config, option, now):
                continue

            result = await self._detector.check(provider_id, option, exclude_commitment_id)
            if result.has_conflict:
                continue

            alternatives.append(AlternativeSlot(start=option.start, end=option.end, confidence=confidence))
            if len(alternatives) >= self.MAX_ALTERNATIVES:
                break

        logger.debug("Found %d alternative(s) for %s at %s", len(alternatives), provider_id, candidate)
        return alternatives

    @staticmethod
    def _neighbours(candidate: TimeRange) -> List[Tuple[TimeRange, Confidence]]:
        hour_before = TimeRange(start=candidate.start.subtract(minutes=NEIGHBOUR_MINUTES), end=candidate.start)
        hour_after = TimeRange(start=candidate.end, end=candidate.end.add(minutes=NEIGHBOUR_MINUTES))
        return [
            (hour_before, Confidence.HIGH),
            (hour_after, Confidence.HIGH),
            (candidate.shift(24 * 60), Confidence.MEDIUM),
        ]
