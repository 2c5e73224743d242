"""
Service layer - orchestration on top of the domain and adapters.
"""

from .alternative_finder import AlternativeSlotFinder
from .availability_store import AvailabilityStore
from .booking_service import BookingService
from .calendar_sync import CalendarSyncService, SyncResult
from .conflict_detector import ConflictDetector
from .scheduling import SchedulingService

__all__ = [
    "AlternativeSlotFinder",
    "AvailabilityStore",
    "BookingService",
    "CalendarSyncService",
    "ConflictDetector",
    "SchedulingService",
    "SyncResult",
]
