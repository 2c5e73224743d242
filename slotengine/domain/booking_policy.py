"""
Booking policy rules derived from a provider's availability configuration.

Violations are reported as ``ConflictSource`` values with ``source="policy"``
so callers can render the exact reason instead of handling an exception.
"""

from typing import List

from pendulum import DateTime

from .models import AvailabilityConfig, ConflictSource, TimeRange, day_of_week

POLICY_SOURCE = "policy"


def _violation(candidate: TimeRange, code: str, title: str, description: str | None = None) -> ConflictSource:
    return ConflictSource(
        source=POLICY_SOURCE,
        id=code,
        title=title,
        start=candidate.start,
        end=candidate.end,
        description=description
    )


def within_declared_hours(config: AvailabilityConfig, candidate: TimeRange) -> bool:
    """Check whether the candidate fits entirely inside one weekly window."""
    day = candidate.start.in_timezone(config.timezone).date()
    for window in config.windows_for(day_of_week(day)):
        bounds = window.bounds_on(day, config.timezone)
        if candidate.start >= bounds.start and candidate.end <= bounds.end:
            return True
    return False


def evaluate_policy(
    config: AvailabilityConfig,
    candidate: TimeRange,
    now: DateTime
) -> List[ConflictSource]:
    """
    Check a candidate interval against advance limits, weekly windows and
    blackout dates.

    Args:
        config: The provider's availability configuration
        candidate: Requested interval
        now: Reference instant for the advance limits

    Returns:
        All violations found (empty when the interval is allowed)
    """
    violations: List[ConflictSource] = []

    if candidate.start < now.add(hours=config.min_advance_hours):
        violations.append(_violation(
            candidate,
            "min_advance",
            "Too close to booking time",
            f"Bookings need at least {config.min_advance_hours}h notice"
        ))

    if candidate.start > now.add(days=config.max_advance_days):
        violations.append(_violation(
            candidate,
            "max_advance",
            "Too far in advance",
            f"Bookings open at most {config.max_advance_days} days ahead"
        ))

    weekday = day_of_week(candidate.start.in_timezone(config.timezone).date())
    if not config.is_window_active_on(weekday):
        violations.append(_violation(candidate, "no_availability", "No availability on this day"))
    elif not within_declared_hours(config, candidate):
        violations.append(_violation(candidate, "outside_hours", "Outside available hours"))

    hits = config.blackout_hits(candidate)
    if hits:
        blackout, _ = hits[0]
        violations.append(_violation(candidate, "blackout", "Date is blacked out", blackout.reason))

    return violations
