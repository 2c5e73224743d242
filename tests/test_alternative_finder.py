"""
Tests for AlternativeSlotFinder.
"""

import asyncio
import datetime

import pendulum

from slotengine.adapters.memory_store import InMemoryStore
from slotengine.domain.models import (
    AvailabilityConfig,
    BlackoutDate,
    CommitmentInterval,
    CommitmentKind,
    Confidence,
    TimeRange,
    WeeklyWindow,
)
from slotengine.services.scheduling import SchedulingService

PROVIDER = "studio-1"
NOW = pendulum.parse("2030-01-01 00:00", tz="UTC")


def _utc(value: str):
    return pendulum.parse(value, tz="UTC")


def _window(day: int, start: int, end: int) -> WeeklyWindow:
    return WeeklyWindow(day_of_week=day, start_time=datetime.time(start, 0), end_time=datetime.time(end, 0))


def _service(config: AvailabilityConfig, commitments=()) -> SchedulingService:
    repository = InMemoryStore()
    service = SchedulingService.build(repository, clock=lambda: NOW)
    service.store.set_config(PROVIDER, config)
    for commitment in commitments:
        repository.add_commitment(PROVIDER, commitment)
    return service


def _booking(booking_id: str, start: str, end: str) -> CommitmentInterval:
    return CommitmentInterval(
        id=booking_id,
        start=_utc(start),
        end=_utc(end),
        kind=CommitmentKind.BOOKING,
        source="internal",
    )


WEEKDAYS_9_TO_17 = AvailabilityConfig(
    weekly_windows=[_window(day, 9, 17) for day in range(1, 6)],
    buffer_minutes=0,
)


class TestAlternativeSlotFinder:
    """Tests for the fixed-order neighbour search."""

    def test_before_after_and_next_day(self):
        """All three neighbours are offered in search order when free."""
        service = _service(WEEKDAYS_9_TO_17, [_booking("bkg_1", "2030-01-07 12:00", "2030-01-07 13:00")])
        candidate = TimeRange(_utc("2030-01-07 12:00"), _utc("2030-01-07 13:00"))

        alternatives = asyncio.run(service.find_alternatives(PROVIDER, candidate))

        assert [(a.start, a.confidence) for a in alternatives] == [
            (_utc("2030-01-07 11:00"), Confidence.HIGH),
            (_utc("2030-01-07 13:00"), Confidence.HIGH),
            (_utc("2030-01-08 12:00"), Confidence.MEDIUM),
        ]
        assert all(a.end.diff(a.start).in_minutes() == 60 for a in alternatives)

    def test_short_request_gets_hour_neighbours(self):
        """Before/after neighbours are whole hours; the next-day one keeps the request length."""
        service = _service(WEEKDAYS_9_TO_17, [_booking("bkg_1", "2030-01-07 10:00", "2030-01-07 10:30")])
        candidate = TimeRange(_utc("2030-01-07 10:00"), _utc("2030-01-07 10:30"))

        alternatives = asyncio.run(service.find_alternatives(PROVIDER, candidate))

        assert [(a.start, a.end, a.confidence) for a in alternatives] == [
            (_utc("2030-01-07 09:00"), _utc("2030-01-07 10:00"), Confidence.HIGH),
            (_utc("2030-01-07 10:30"), _utc("2030-01-07 11:30"), Confidence.HIGH),
            (_utc("2030-01-08 10:00"), _utc("2030-01-08 10:30"), Confidence.MEDIUM),
        ]

    def test_neighbours_outside_hours_are_skipped(self):
        """An alternative before opening time is not offered."""
        service = _service(WEEKDAYS_9_TO_17, [_booking("bkg_1", "2030-01-07 09:00", "2030-01-07 10:00")])
        candidate = TimeRange(_utc("2030-01-07 09:00"), _utc("2030-01-07 10:00"))

        alternatives = asyncio.run(service.find_alternatives(PROVIDER, candidate))

        assert [a.start for a in alternatives] == [_utc("2030-01-07 10:00"), _utc("2030-01-08 09:00")]

    def test_next_day_without_window(self):
        """No next-day neighbour when the provider does not work that day."""
        service = _service(WEEKDAYS_9_TO_17, [_booking("bkg_1", "2030-01-04 12:00", "2030-01-04 13:00")])
        candidate = TimeRange(_utc("2030-01-04 12:00"), _utc("2030-01-04 13:00"))

        alternatives = asyncio.run(service.find_alternatives(PROVIDER, candidate))

        assert [a.confidence for a in alternatives] == [Confidence.HIGH, Confidence.HIGH]

    def test_next_day_blacked_out(self):
        """No next-day neighbour on a blackout date."""
        config = AvailabilityConfig(
            weekly_windows=[_window(0, 9, 17), _window(1, 9, 17)],
            blackout_dates=[BlackoutDate(date=datetime.date(2030, 1, 7), reason="Holiday")],
            buffer_minutes=0,
        )
        service = _service(config, [_booking("bkg_1", "2030-01-06 12:00", "2030-01-06 13:00")])
        candidate = TimeRange(_utc("2030-01-06 12:00"), _utc("2030-01-06 13:00"))

        alternatives = asyncio.run(service.find_alternatives(PROVIDER, candidate))

        assert [a.start for a in alternatives] == [_utc("2030-01-06 11:00"), _utc("2030-01-06 13:00")]

    def test_busy_neighbours_are_skipped(self):
        """Neighbours that conflict themselves are not offered."""
        commitments = [
            _booking("bkg_1", "2030-01-07 11:00", "2030-01-07 14:00"),
            _booking("bkg_2", "2030-01-08 12:00", "2030-01-08 13:00"),
        ]
        service = _service(WEEKDAYS_9_TO_17, commitments)
        candidate = TimeRange(_utc("2030-01-07 12:00"), _utc("2030-01-07 13:00"))

        assert asyncio.run(service.find_alternatives(PROVIDER, candidate)) == []

    def test_every_alternative_passes_check(self):
        """Each suggestion is free according to the detector."""
        config = AvailabilityConfig(weekly_windows=[_window(day, 8, 20) for day in range(7)], buffer_minutes=30)
        commitments = [
            _booking("bkg_1", "2030-01-07 12:00", "2030-01-07 13:00"),
            _booking("bkg_2", "2030-01-07 15:00", "2030-01-07 16:00"),
        ]
        service = _service(config, commitments)
        candidate = TimeRange(_utc("2030-01-07 12:30"), _utc("2030-01-07 14:00"))

        async def run():
            alternatives = await service.find_alternatives(PROVIDER, candidate)
            checks = [await service.check(PROVIDER, TimeRange(a.start, a.end)) for a in alternatives]
            return alternatives, checks

        alternatives, checks = asyncio.run(run())

        assert alternatives
        assert len(alternatives) <= 3
        assert not any(result.has_conflict for result in checks)
