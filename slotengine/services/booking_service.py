"""
Booking write path: validate, then record, one provider at a time.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from collections import defaultdict
from typing import DefaultDict, Optional

from ..domain.exceptions import BookingConflictError
from ..domain.models import CommitmentInterval, CommitmentKind, TimeRange
from .scheduling import SchedulingService

logger = logging.getLogger(__name__)


class BookingService:
    """
    Creates and changes commitments in the provider's ledger.

    Validation and the ledger write happen under a per-provider lock, so two
    overlapping requests for the same provider cannot both be accepted.
    Detection itself stays lock-free.
    """

    def __init__(self, scheduling: SchedulingService) -> None:
        self._scheduling = scheduling
        self._locks: DefaultDict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def _repository(self):
        return self._scheduling.store.repository

    async def create_booking(
        self,
        provider_id: str,
        interval: TimeRange,
        title: str = "Booking",
        description: Optional[str] = None,
    ) -> CommitmentInterval:
        """
        Validate and record a booking.

        The booking is ``confirmed`` when the provider auto-accepts, otherwise
        ``pending`` (pending bookings do not hold the time yet).

        Raises:
            BookingConflictError: If the interval violates policy or conflicts
        """
        async with self._locks[provider_id]:
            result = await self._scheduling.validate_booking(provider_id, interval)
            if result.has_conflict:
                raise BookingConflictError(result)

            config = await asyncio.to_thread(self._scheduling.store.get_config, provider_id)
            booking = CommitmentInterval(
                id=f"bkg_{uuid.uuid4().hex[:12]}",
                start=interval.start,
                end=interval.end,
                kind=CommitmentKind.BOOKING,
                source="internal",
                title=title,
                status="confirmed" if config.auto_accept else "pending",
                description=description,
            )
            await asyncio.to_thread(self._repository.add_commitment, provider_id, booking)

        logger.info("Created %s booking %s for %s at %s", booking.status, booking.id, provider_id, interval)
        return booking

    async def confirm_booking(self, provider_id: str, booking_id: str) -> CommitmentInterval:
        """
        Move a pending booking to ``confirmed`` after re-checking its time.

        Raises:
            NotFound: If the booking does not exist
            BookingConflictError: If the time was taken in the meantime
        """
        async with self._locks[provider_id]:
            booking = await asyncio.to_thread(self._repository.get_commitment, provider_id, booking_id)
            result = await self._scheduling.check(provider_id, booking.time_range, exclude_commitment_id=booking.id)
            if result.has_conflict:
                raise BookingConflictError(result)

            confirmed = dataclasses.replace(booking, status="confirmed")
            await asyncio.to_thread(self._repository.replace_commitment, provider_id, confirmed)

        logger.info("Confirmed booking %s for %s", booking_id, provider_id)
        return confirmed

    async def reschedule_booking(
        self,
        provider_id: str,
        booking_id: str,
        interval: TimeRange,
    ) -> CommitmentInterval:
        """
        Move a booking to a new interval. The booking's own current time is
        ignored while validating.

        Raises:
            NotFound: If the booking does not exist
            BookingConflictError: If the new interval is not available
        """
        async with self._locks[provider_id]:
            booking = await asyncio.to_thread(self._repository.get_commitment, provider_id, booking_id)
            result = await self._scheduling.validate_booking(provider_id, interval, exclude_commitment_id=booking.id)
            if result.has_conflict:
                raise BookingConflictError(result)

            moved = dataclasses.replace(booking, start=interval.start, end=interval.end)
            await asyncio.to_thread(self._repository.replace_commitment, provider_id, moved)

        logger.info("Rescheduled booking %s for %s to %s", booking_id, provider_id, interval)
        return moved

    async def cancel_booking(self, provider_id: str, booking_id: str) -> CommitmentInterval:
        """
        Remove a booking from the ledger.

        Raises:
            NotFound: If the booking does not exist
        """
        async with self._locks[provider_id]:
            booking = await asyncio.to_thread(self._repository.remove_commitment, provider_id, booking_id)

        logger.info("Cancelled booking %s for %s", booking_id, provider_id)
        return booking

    async def block_time(
        self,
        provider_id: str,
        interval: TimeRange,
        reason: Optional[str] = None,
    ) -> CommitmentInterval:
        """Record a manual block. Blocks are not validated; they always win."""
        block = CommitmentInterval(
            id=f"blk_{uuid.uuid4().hex[:12]}",
            start=interval.start,
            end=interval.end,
            kind=CommitmentKind.BLOCKED,
            source="manual",
            title=reason or "Blocked Time",
            description=reason,
        )
        async with self._locks[provider_id]:
            await asyncio.to_thread(self._repository.add_commitment, provider_id, block)

        logger.info("Blocked %s for %s", interval, provider_id)
        return block

    async def unblock_time(self, provider_id: str, block_id: str) -> CommitmentInterval:
        """
        Raises:
            NotFound: If the block does not exist
        """
        async with self._locks[provider_id]:
            return await asyncio.to_thread(self._repository.remove_commitment, provider_id, block_id)
