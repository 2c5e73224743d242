"""
Core business logic for generating bookable time slots.

Pure domain logic: everything the generator needs arrives in an
``AvailabilitySnapshot`` plus the reference instant ``now`` (no API calls,
no database, no I/O).
"""

import datetime
from typing import Iterator, List, Optional, Tuple

from pendulum import DateTime

from .models import (
    AvailabilityConfig,
    AvailabilitySnapshot,
    CandidateSlot,
    CommitmentInterval,
    TimeRange,
    WeeklyWindow,
    day_of_week,
)

BufferedCommitment = Tuple[CommitmentInterval, TimeRange]


class SlotGenerator:
    """
    Generates candidate slots from a provider's weekly windows.

    Algorithm:
    1. Clamp the range end to ``now + max_advance_days``
    2. Walk each calendar day, skipping days without windows or blacked out
    3. Step through every window by ``slot_duration + buffer``
    4. Mark slots inside the minimum notice period, or overlapping a
       commitment widened by the buffer, as unavailable
    5. Return all slots sorted by start time
    """

    def generate(
        self,
        snapshot: AvailabilitySnapshot,
        range_start: DateTime,
        range_end: DateTime,
        now: DateTime
    ) -> List[CandidateSlot]:
        """
        Generate all candidate slots for the snapshot's provider.

        Args:
            snapshot: Provider configuration and commitments
            range_start: Start of the requested period
            range_end: End of the requested period
            now: Reference instant for the advance limits

        Returns:
            CandidateSlot objects ordered by start time. Calling this again
            with the same inputs returns an identical list.
        """
        config = snapshot.config
        latest_start = now.add(days=config.max_advance_days)
        clamped_end = min(range_end, latest_start)

        if clamped_end < range_start:
            return []

        earliest_start = now.add(hours=config.min_advance_hours)
        commitments = self._buffer_commitments(snapshot)
        slots: List[CandidateSlot] = []

        for day in self._days(range_start, clamped_end, config.timezone):
            windows = config.windows_for(day_of_week(day))
            if not windows or config.is_blacked_out(day):
                continue

            for window in windows:
                slots.extend(
                    self._window_slots(
                        day=day,
                        window=window,
                        config=config,
                        commitments=commitments,
                        earliest_start=earliest_start,
                        latest_start=latest_start
                    )
                )

        # Windows on the same day may be declared in any order
        slots.sort(key=lambda slot: slot.start)
        return slots

    def _days(
        self,
        range_start: DateTime,
        range_end: DateTime,
        timezone: str
    ) -> Iterator[datetime.date]:
        current = range_start.in_timezone(timezone).date()
        last = range_end.in_timezone(timezone).date()

        while current <= last:
            yield current
            current = current + datetime.timedelta(days=1)

    def _buffer_commitments(self, snapshot: AvailabilitySnapshot) -> List[BufferedCommitment]:
        """
        Widen every time-consuming commitment by the configured buffer.

        The buffer surrounds the commitment, not the slot, so the idle time
        around existing bookings does not depend on how slots are stepped.
        """
        buffer_minutes = snapshot.config.buffer_minutes
        return [
            (commitment, commitment.time_range.widen(buffer_minutes))
            for commitment in snapshot.blocking_commitments()
        ]

    def _window_slots(
        self,
        *,
        day: datetime.date,
        window: WeeklyWindow,
        config: AvailabilityConfig,
        commitments: List[BufferedCommitment],
        earliest_start: DateTime,
        latest_start: DateTime
    ) -> List[CandidateSlot]:
        """
        Step through one window on one day.

        Example (slot 60, buffer 15, window 09:00-12:00):
        09:00-10:00, 10:15-11:15 (11:30-12:30 would overrun the window)
        """
        bounds = window.bounds_on(day, config.timezone)
        timezone = window.timezone or config.timezone
        duration = config.slot_duration_minutes
        step = duration + config.buffer_minutes

        slots: List[CandidateSlot] = []
        current = bounds.start

        while current.add(minutes=duration) <= bounds.end:
            if current > latest_start:
                break

            slot_range = TimeRange(start=current, end=current.add(minutes=duration))
            conflict = self._find_conflict(slot_range, commitments)

            reason: Optional[str] = None
            if conflict is not None:
                reason = "commitment"
            elif current < earliest_start:
                reason = "min_advance"

            slots.append(
                CandidateSlot(
                    start=slot_range.start,
                    end=slot_range.end,
                    duration_minutes=duration,
                    timezone=timezone,
                    available=reason is None,
                    conflicting_commitment_id=conflict.id if conflict else None,
                    unavailable_reason=reason
                )
            )

            current = current.add(minutes=step)

        return slots

    @staticmethod
    def _find_conflict(
        slot_range: TimeRange,
        commitments: List[BufferedCommitment]
    ) -> Optional[CommitmentInterval]:
        for commitment, buffered in commitments:
            if slot_range.overlaps(buffered):
                return commitment
        return None
