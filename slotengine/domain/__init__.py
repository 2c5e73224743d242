"""
Domain layer - Pure business logic without external dependencies.
"""

from .booking_policy import evaluate_policy, within_declared_hours
from .models import (
    AlternativeSlot,
    AvailabilityConfig,
    AvailabilityReport,
    AvailabilitySnapshot,
    AvailabilitySummary,
    BlackoutDate,
    CandidateSlot,
    CommitmentInterval,
    CommitmentKind,
    Confidence,
    ConflictResult,
    ConflictSource,
    TimeRange,
    WeeklyWindow,
    day_of_week,
)
from .slot_generator import SlotGenerator

__all__ = [
    "AlternativeSlot",
    "AvailabilityConfig",
    "AvailabilityReport",
    "AvailabilitySnapshot",
    "AvailabilitySummary",
    "BlackoutDate",
    "CandidateSlot",
    "CommitmentInterval",
    "CommitmentKind",
    "Confidence",
    "ConflictResult",
    "ConflictSource",
    "SlotGenerator",
    "TimeRange",
    "WeeklyWindow",
    "day_of_week",
    "evaluate_policy",
    "within_declared_hours",
]
