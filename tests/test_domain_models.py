"""
Tests for domain models.
"""

import datetime

import pendulum
import pytest
from pydantic import ValidationError

from slotengine.domain.models import (
    AvailabilityConfig,
    BlackoutDate,
    CommitmentInterval,
    CommitmentKind,
    ConflictResult,
    ConflictSource,
    TimeRange,
    WeeklyWindow,
    day_of_week,
)


def _range(start: str, end: str, tz: str = "UTC") -> TimeRange:
    return TimeRange(start=pendulum.parse(start, tz=tz), end=pendulum.parse(end, tz=tz))


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        tr = _range("2030-01-07 09:00", "2030-01-07 17:00", tz="Europe/Berlin")

        assert tr.duration_minutes() == 480

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            _range("2030-01-07 17:00", "2030-01-07 09:00")

    def test_empty_time_range_raises_error(self):
        """Zero-length ranges are rejected as well."""
        with pytest.raises(ValueError):
            _range("2030-01-07 09:00", "2030-01-07 09:00")

    def test_overlaps(self):
        """Test overlap detection."""
        tr1 = _range("2030-01-07 09:00", "2030-01-07 12:00")
        tr2 = _range("2030-01-07 11:00", "2030-01-07 14:00")
        tr3 = _range("2030-01-07 14:00", "2030-01-07 17:00")

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)

    def test_touching_ranges_do_not_overlap(self):
        """End of one range equal to the start of the next is not an overlap."""
        tr1 = _range("2030-01-07 09:00", "2030-01-07 10:00")
        tr2 = _range("2030-01-07 10:00", "2030-01-07 11:00")

        assert not tr1.overlaps(tr2)
        assert not tr2.overlaps(tr1)

    def test_widen_and_shift(self):
        """Widening grows both sides, shifting keeps the length."""
        tr = _range("2030-01-07 10:00", "2030-01-07 11:00")

        assert tr.widen(15) == _range("2030-01-07 09:45", "2030-01-07 11:15")
        assert tr.widen(0) is tr
        assert tr.shift(-60) == _range("2030-01-07 09:00", "2030-01-07 10:00")

    def test_days_in_timezone(self):
        """A late UTC evening is already the next day in Tokyo."""
        tr = _range("2030-01-07 22:00", "2030-01-07 23:00")

        assert list(tr.days("UTC")) == [datetime.date(2030, 1, 7)]
        assert list(tr.days("Asia/Tokyo")) == [datetime.date(2030, 1, 8)]


class TestWeeklyWindow:
    """Tests for WeeklyWindow validation."""

    def test_end_before_start_rejected(self):
        """A window must close after it opens."""
        with pytest.raises(ValidationError, match="Invalid time window"):
            WeeklyWindow(day_of_week=0, start_time=datetime.time(12, 0), end_time=datetime.time(9, 0))

    def test_day_of_week_range(self):
        """Weekdays run from 0 (Sunday) to 6 (Saturday)."""
        with pytest.raises(ValidationError):
            WeeklyWindow(day_of_week=7, start_time=datetime.time(9, 0), end_time=datetime.time(12, 0))

    def test_day_of_week_counts_from_sunday(self):
        """Calendar dates map to 0=Sunday through 6=Saturday."""
        assert day_of_week(datetime.date(2030, 1, 6)) == 0
        assert day_of_week(datetime.date(2030, 1, 7)) == 1
        assert day_of_week(datetime.date(2030, 1, 12)) == 6

    def test_unknown_timezone_rejected(self):
        """Window timezones must be real zone names."""
        with pytest.raises(ValidationError, match="Unknown timezone"):
            WeeklyWindow(
                day_of_week=0,
                start_time=datetime.time(9, 0),
                end_time=datetime.time(12, 0),
                timezone="Mars/Olympus"
            )

    def test_bounds_on_uses_window_timezone(self):
        """A window with its own timezone ignores the config default."""
        window = WeeklyWindow(
            day_of_week=0,
            start_time=datetime.time(9, 0),
            end_time=datetime.time(12, 0),
            timezone="Europe/Berlin"
        )

        bounds = window.bounds_on(datetime.date(2030, 1, 7), "UTC")

        assert bounds.start.in_timezone("UTC").hour == 8
        assert bounds.duration_minutes() == 180


class TestBlackoutDate:
    """Tests for blackout coverage."""

    def test_single_day(self):
        """Without end date exactly one calendar date is blocked."""
        blackout = BlackoutDate(date=datetime.date(2024, 1, 15))

        assert blackout.covers(datetime.date(2024, 1, 15))
        assert not blackout.covers(datetime.date(2024, 1, 14))
        assert not blackout.covers(datetime.date(2024, 1, 16))

    def test_date_range(self):
        """Ranges include both ends."""
        blackout = BlackoutDate(date=datetime.date(2024, 1, 15), end_date=datetime.date(2024, 1, 17))

        assert blackout.covers(datetime.date(2024, 1, 17))
        assert not blackout.covers(datetime.date(2024, 1, 18))

    def test_recurring_matches_weekday(self):
        """Recurring entries block the same weekday until the end date."""
        blackout = BlackoutDate(
            date=datetime.date(2024, 1, 15),
            end_date=datetime.date(2024, 2, 5),
            recurring=True
        )

        assert blackout.covers(datetime.date(2024, 1, 22))
        assert blackout.covers(datetime.date(2024, 2, 5))
        assert not blackout.covers(datetime.date(2024, 1, 16))
        assert not blackout.covers(datetime.date(2024, 2, 12))
        assert not blackout.covers(datetime.date(2024, 1, 8))

    def test_end_before_start_rejected(self):
        """End date must not precede the start date."""
        with pytest.raises(ValidationError):
            BlackoutDate(date=datetime.date(2024, 1, 15), end_date=datetime.date(2024, 1, 14))


class TestAvailabilityConfig:
    """Tests for AvailabilityConfig defaults and predicates."""

    def test_defaults(self):
        """Providers without configuration get the documented defaults."""
        config = AvailabilityConfig()

        assert config.weekly_windows == []
        assert config.buffer_minutes == 30
        assert config.slot_duration_minutes == 60
        assert config.min_advance_hours == 24
        assert config.max_advance_days == 90
        assert config.auto_accept is False

    @pytest.mark.parametrize(
        "field, value",
        [
            ("buffer_minutes", 241),
            ("slot_duration_minutes", 10),
            ("min_advance_hours", 73),
            ("max_advance_days", 0),
        ],
    )
    def test_field_ranges(self, field, value):
        """Out-of-range numbers are rejected."""
        with pytest.raises(ValidationError):
            AvailabilityConfig(**{field: value})

    def test_window_and_blackout_predicates(self):
        """Active weekdays and blacked-out dates are independent checks."""
        config = AvailabilityConfig(
            weekly_windows=[
                WeeklyWindow(day_of_week=0, start_time=datetime.time(9, 0), end_time=datetime.time(12, 0))
            ],
            blackout_dates=[BlackoutDate(date=datetime.date(2024, 1, 15), reason="Holiday")],
        )

        assert config.is_window_active_on(0)
        assert not config.is_window_active_on(1)
        assert config.is_blacked_out(datetime.date(2024, 1, 15))
        assert not config.is_blacked_out(datetime.date(2024, 1, 22))

        hits = config.blackout_hits(_range("2024-01-15 20:00", "2024-01-15 21:00"))
        assert len(hits) == 1
        assert hits[0][0].reason == "Holiday"
        assert hits[0][1] == _range("2024-01-15 00:00", "2024-01-16 00:00")


class TestCommitmentInterval:
    """Tests for which commitments consume time."""

    def _commitment(self, kind: CommitmentKind, status: str) -> CommitmentInterval:
        tr = _range("2030-01-07 10:00", "2030-01-07 11:00")
        return CommitmentInterval(id="c1", start=tr.start, end=tr.end, kind=kind, source="internal", status=status)

    @pytest.mark.parametrize(
        "kind, status, expected",
        [
            (CommitmentKind.BOOKING, "confirmed", True),
            (CommitmentKind.BOOKING, "in_progress", True),
            (CommitmentKind.BOOKING, "pending", False),
            (CommitmentKind.BOOKING, "completed", False),
            (CommitmentKind.BOOKING, "cancelled", False),
            (CommitmentKind.BLOCKED, "confirmed", True),
            (CommitmentKind.EXTERNAL, "confirmed", True),
            (CommitmentKind.EXTERNAL, "cancelled", False),
        ],
    )
    def test_blocks_time(self, kind, status, expected):
        assert self._commitment(kind, status).blocks_time is expected


def test_conflict_result_has_conflict():
    """has_conflict follows the source list."""
    result = ConflictResult()
    assert not result.has_conflict

    tr = _range("2030-01-07 10:00", "2030-01-07 11:00")
    result.sources.append(ConflictSource(source="internal", start=tr.start, end=tr.end))
    assert result.has_conflict
