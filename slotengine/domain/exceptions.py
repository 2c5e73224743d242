"""
Domain-specific exception hierarchy for the slot engine.
"""

from typing import List


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(SlotEngineError):
    """Raised when an availability configuration is rejected."""

    def __init__(self, message: str, errors: List[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFound(SlotEngineError):
    """Raised by persistence when a document or commitment does not exist."""


class SourceUnavailable(SlotEngineError):
    """Raised when a conflict source cannot be reached or times out."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Conflict source '{source}' unavailable: {reason}")
        self.source = source
        self.reason = reason


class BookingConflictError(SlotEngineError):
    """Raised by the write path when the requested interval is not free."""

    def __init__(self, result):
        reasons = ", ".join(s.title or s.source for s in result.sources) or "unknown"
        super().__init__(f"Requested interval is not available: {reasons}")
        self.result = result


class CalendarAPIError(SlotEngineError):
    """Raised when calendar data cannot be fetched, parsed or written."""


class AuthenticationError(SlotEngineError):
    """Raised when authentication or token handling fails."""
