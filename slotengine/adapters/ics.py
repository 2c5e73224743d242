"""
iCalendar (.ics) export and import for availability and commitments.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from ..domain.models import CandidateSlot, CommitmentInterval, day_of_week

PRODID = "-//SlotEngine//EN"
CRLF = "\r\n"
FOLD_WIDTH = 75


@dataclass(frozen=True)
class IcsEvent:
    start: DateTime
    end: DateTime
    title: str
    description: str = ""
    uid: Optional[str] = None

    @classmethod
    def from_commitment(cls, commitment: CommitmentInterval) -> "IcsEvent":
        return cls(
            start=commitment.start,
            end=commitment.end,
            title=commitment.title or commitment.kind.value.title(),
            description=commitment.description or "",
            uid=f"{commitment.id}@slotengine"
        )

    @classmethod
    def from_slot(cls, slot: CandidateSlot) -> "IcsEvent":
        return cls(
            start=slot.start,
            end=slot.end,
            title="Available",
            description="Open for booking",
        )


@dataclass(frozen=True)
class BusySlot:
    """Weekday (0=Sunday) and wall-clock start of an imported event."""
    day_of_week: int
    time: str


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _unescape(text: str) -> str:
    return re.sub(r"\\([\\;,nN])", lambda m: "\n" if m.group(1) in "nN" else m.group(1), text)


def _fold(line: str) -> List[str]:
    """
    Split a content line so no physical line exceeds 75 octets.

    Widths are counted in UTF-8 bytes; a multi-byte character is never split.
    """
    parts: List[str] = []
    current = ""
    size = 0
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > FOLD_WIDTH:
            parts.append(current)
            # Continuation lines start with a space, which takes one octet
            current = " "
            size = 1
        current += char
        size += width
    parts.append(current)
    return parts


def _format_utc(dt: DateTime) -> str:
    return dt.in_timezone("UTC").format("YYYYMMDD[T]HHmmss[Z]")


def export_ics(events: Iterable[IcsEvent], stamp: Optional[DateTime] = None) -> str:
    """
    Serialize events into a VCALENDAR document.

    Args:
        events: Events to write
        stamp: DTSTAMP value (defaults to now)

    Returns:
        The calendar text with CRLF line endings
    """
    stamp = stamp or pendulum.now("UTC")
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]

    for index, event in enumerate(events):
        uid = event.uid or f"{_format_utc(event.start)}-{index}@slotengine"
        lines.extend([
            "BEGIN:VEVENT",
            f"UID:{uid}",
            f"DTSTAMP:{_format_utc(stamp)}",
            f"DTSTART:{_format_utc(event.start)}",
            f"DTEND:{_format_utc(event.end)}",
            f"SUMMARY:{_escape(event.title)}",
        ])
        if event.description:
            lines.append(f"DESCRIPTION:{_escape(event.description)}")
        lines.append("END:VEVENT")

    lines.append("END:VCALENDAR")

    folded: List[str] = []
    for line in lines:
        folded.extend(_fold(line))
    return CRLF.join(folded) + CRLF


def _unfold(text: str) -> List[str]:
    lines: List[str] = []
    for raw in text.replace("\r\n", "\n").split("\n"):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw:
            lines.append(raw)
    return lines


def _split_property(line: str) -> Tuple[str, Dict[str, str], str]:
    name_part, _, value = line.partition(":")
    name, *raw_params = name_part.split(";")
    params = {}
    for raw in raw_params:
        key, _, param_value = raw.partition("=")
        params[key.upper()] = param_value
    return name.upper(), params, value


def _parse_ics_datetime(value: str, params: Dict[str, str], default_timezone: str) -> DateTime:
    if params.get("VALUE") == "DATE" or len(value) == 8:
        return pendulum.from_format(value, "YYYYMMDD", tz=params.get("TZID", default_timezone))
    if value.endswith("Z"):
        return pendulum.from_format(value[:-1], "YYYYMMDD[T]HHmmss", tz="UTC")
    return pendulum.from_format(value, "YYYYMMDD[T]HHmmss", tz=params.get("TZID", default_timezone))


def parse_ics_events(text: str, default_timezone: str = "UTC") -> List[IcsEvent]:
    """
    Parse VEVENT blocks out of an iCalendar document.

    Floating times (no ``Z`` and no ``TZID``) are read in ``default_timezone``.
    Events without DTSTART are skipped; a missing DTEND means a one hour event.

    Raises:
        ValueError: If the text is not an iCalendar document
    """
    lines = _unfold(text)
    if not lines or lines[0].strip().upper() != "BEGIN:VCALENDAR":
        raise ValueError("Not an iCalendar document (missing BEGIN:VCALENDAR)")

    events: List[IcsEvent] = []
    current: Optional[Dict[str, object]] = None

    for line in lines:
        name, params, value = _split_property(line.strip())

        if name == "BEGIN" and value.upper() == "VEVENT":
            current = {}
        elif name == "END" and value.upper() == "VEVENT":
            if current is not None and "start" in current:
                start = current["start"]
                events.append(
                    IcsEvent(
                        start=start,
                        end=current.get("end") or start.add(hours=1),
                        title=current.get("title", ""),
                        description=current.get("description", ""),
                        uid=current.get("uid"),
                    )
                )
            current = None
        elif current is not None:
            if name == "DTSTART":
                current["start"] = _parse_ics_datetime(value, params, default_timezone)
            elif name == "DTEND":
                current["end"] = _parse_ics_datetime(value, params, default_timezone)
            elif name == "SUMMARY":
                current["title"] = _unescape(value)
            elif name == "DESCRIPTION":
                current["description"] = _unescape(value)
            elif name == "UID":
                current["uid"] = value

    return events


def parse_busy_slots(text: str, timezone: str = "UTC") -> List[BusySlot]:
    """Weekday and ``HH:mm`` start of every event, read in ``timezone``."""
    slots: List[BusySlot] = []
    for event in parse_ics_events(text, default_timezone=timezone):
        local = event.start.in_timezone(timezone)
        slots.append(BusySlot(day_of_week=day_of_week(local.date()), time=local.format("HH:mm")))
    return slots
