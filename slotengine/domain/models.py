"""
Domain models for provider availability, commitments and conflict results.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Half-open overlap check; ranges that only touch do not overlap."""
        return self.start < other.end and self.end > other.start

    def widen(self, minutes: int) -> "TimeRange":
        """Return the range grown by ``minutes`` on both sides."""
        if minutes <= 0:
            return self
        return TimeRange(
            start=self.start.subtract(minutes=minutes),
            end=self.end.add(minutes=minutes)
        )

    def shift(self, minutes: int) -> "TimeRange":
        """Return the range moved by ``minutes`` (negative moves backwards)."""
        return TimeRange(
            start=self.start.add(minutes=minutes),
            end=self.end.add(minutes=minutes)
        )

    def days(self, timezone: str) -> Iterator[datetime.date]:
        """Yield every calendar date (in ``timezone``) the range touches."""
        current = self.start.in_timezone(timezone).date()
        last = self.end.subtract(microseconds=1).in_timezone(timezone).date()
        while current <= last:
            yield current
            current = current + datetime.timedelta(days=1)

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


def day_of_week(day: datetime.date) -> int:
    """Weekday number of ``day`` with 0=Sunday, 6=Saturday."""
    return (day.weekday() + 1) % 7


def day_range(day: datetime.date, timezone: str) -> TimeRange:
    """The full calendar day ``day`` in ``timezone`` as a half-open range."""
    start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
    return TimeRange(start=start, end=start.add(days=1))


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        pendulum.timezone(value)
    except Exception as exc:
        raise ValueError(f"Unknown timezone: {value}") from exc
    return value


class WeeklyWindow(BaseModel):
    """
    A recurring block of working hours on one weekday.

    ``day_of_week`` counts from Sunday: 0=Sunday, 1=Monday, 6=Saturday.
    """
    model_config = ConfigDict(frozen=True)

    day_of_week: int = Field(ge=0, le=6)
    start_time: datetime.time
    end_time: datetime.time
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _check_timezone(value)

    @model_validator(mode="after")
    def validate_order(self) -> "WeeklyWindow":
        """Ensure the window opens before it closes."""
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Invalid time window: {self.start_time:%H:%M} - {self.end_time:%H:%M}"
            )
        return self

    def bounds_on(self, day: datetime.date, default_timezone: str) -> TimeRange:
        """Concrete start/end of this window on ``day``."""
        tz = self.timezone or default_timezone
        start = pendulum.datetime(
            day.year, day.month, day.day,
            self.start_time.hour, self.start_time.minute,
            tz=tz
        )
        end = pendulum.datetime(
            day.year, day.month, day.day,
            self.end_time.hour, self.end_time.minute,
            tz=tz
        )
        return TimeRange(start=start, end=end)


class BlackoutDate(BaseModel):
    """
    A date (or date range) on which nothing can be booked.

    With ``recurring`` set, only dates sharing ``date``'s weekday are
    blocked, from ``date`` up to ``end_date`` (open-ended without one).
    """
    model_config = ConfigDict(frozen=True)

    date: datetime.date
    end_date: Optional[datetime.date] = None
    reason: Optional[str] = Field(default=None, max_length=200)
    recurring: bool = False

    @model_validator(mode="after")
    def validate_range(self) -> "BlackoutDate":
        if self.end_date is not None and self.end_date < self.date:
            raise ValueError("end_date must not be before date")
        return self

    def covers(self, day: datetime.date) -> bool:
        """Check whether ``day`` is blacked out by this entry."""
        if day < self.date:
            return False
        if self.recurring:
            if self.end_date is not None and day > self.end_date:
                return False
            return day.weekday() == self.date.weekday()
        return day <= (self.end_date or self.date)


class AvailabilityConfig(BaseModel):
    """
    A provider's declared schedule. Replaced as a whole, never merged.
    """
    model_config = ConfigDict(frozen=True)

    weekly_windows: List[WeeklyWindow] = Field(default_factory=list)
    blackout_dates: List[BlackoutDate] = Field(default_factory=list)
    buffer_minutes: int = Field(default=30, ge=0, le=240)
    slot_duration_minutes: int = Field(default=60, ge=15, le=480)
    min_advance_hours: int = Field(default=24, ge=0, le=72)
    max_advance_days: int = Field(default=90, ge=1, le=365)
    auto_accept: bool = False
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _check_timezone(value)

    def windows_for(self, weekday: int) -> List[WeeklyWindow]:
        """All windows declared for ``weekday``, in declaration order."""
        return [w for w in self.weekly_windows if w.day_of_week == weekday]

    def is_window_active_on(self, weekday: int) -> bool:
        return any(w.day_of_week == weekday for w in self.weekly_windows)

    def is_blacked_out(self, day: datetime.date) -> bool:
        return any(b.covers(day) for b in self.blackout_dates)

    def blackout_hits(self, interval: TimeRange) -> List[Tuple[BlackoutDate, TimeRange]]:
        """Blackout entries overlapping ``interval``, with the blocked day each one covers."""
        hits: List[Tuple[BlackoutDate, TimeRange]] = []
        for day in interval.days(self.timezone):
            for blackout in self.blackout_dates:
                if blackout.covers(day):
                    hits.append((blackout, day_range(day, self.timezone)))
        return hits


class CommitmentKind(str, Enum):
    BOOKING = "booking"
    BLOCKED = "blocked"
    EXTERNAL = "external"


# Booking statuses that consume provider time.
ACTIVE_BOOKING_STATUSES = frozenset({"confirmed", "in_progress"})


@dataclass(frozen=True)
class CommitmentInterval:
    """
    Anything consuming provider time: a booking, a manual block or an
    event imported from an external calendar.
    """
    id: str
    start: DateTime
    end: DateTime
    kind: CommitmentKind
    source: str
    title: str = ""
    status: str = "confirmed"
    description: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    @property
    def blocks_time(self) -> bool:
        """Whether this commitment makes the provider unavailable."""
        if self.kind == CommitmentKind.BOOKING:
            return self.status in ACTIVE_BOOKING_STATUSES
        return self.status != "cancelled"


@dataclass(frozen=True)
class CandidateSlot:
    """A generated, bookable-looking interval. Never persisted."""
    start: DateTime
    end: DateTime
    duration_minutes: int
    timezone: str
    available: bool
    conflicting_commitment_id: Optional[str] = None
    unavailable_reason: Optional[str] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass(frozen=True)
class ConflictSource:
    """One reason why an interval is not free."""
    source: str
    start: DateTime
    end: DateTime
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class AlternativeSlot:
    start: DateTime
    end: DateTime
    confidence: Confidence


@dataclass
class ConflictResult:
    """
    Aggregated verdict for a candidate interval.

    ``failed_sources`` names sources that were skipped because they failed
    or timed out; they contributed no conflict.
    """
    sources: List[ConflictSource] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    alternatives: List[AlternativeSlot] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.sources)


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """Point-in-time view of a provider's configuration and commitments."""
    provider_id: str
    config: AvailabilityConfig
    commitments: Tuple[CommitmentInterval, ...] = ()

    def blocking_commitments(self) -> List[CommitmentInterval]:
        return [c for c in self.commitments if c.blocks_time]


@dataclass
class AvailabilitySummary:
    total_slots: int
    available_slots: int
    busy_slots: int
    sources: Dict[str, int] = field(default_factory=dict)


@dataclass
class AvailabilityReport:
    available_slots: List[CandidateSlot]
    busy_slots: List[CandidateSlot]
    summary: AvailabilitySummary


Clock = Callable[[], DateTime]


def utc_now() -> DateTime:
    return pendulum.now("UTC")
