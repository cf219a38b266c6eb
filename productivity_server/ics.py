"""
iCalendar (.ics) export.

Produces one VCALENDAR holding a VEVENT per event, importable into Google
Calendar, Outlook and Apple Calendar. All timestamps are written in UTC.
"""
from __future__ import annotations

import secrets
import typing as t
from datetime import datetime

from services.shared.errors import EmptyCalendarError
from services.shared.utils import format_ics_datetime, ics_escape, utcnow
from .models import CalendarEvent

PRODUCT_ID = "-//Syllabus Study Planner//EN"
UID_DOMAIN = "syllabus-study-planner"
CRLF = "\r\n"
LINE_LIMIT = 75  # octets, excluding the CRLF


def fold_line(line: str, limit: int = LINE_LIMIT) -> str:
    """Fold a content line so no physical line exceeds ``limit`` UTF-8 octets.

    Continuation lines start with a single space, which counts toward their
    limit. Multi-byte characters are never split.
    """
    if len(line.encode("utf-8")) <= limit:
        return line
    parts: list[str] = []
    current: list[str] = []
    size = 0
    width = limit
    for char in line:
        octets = len(char.encode("utf-8"))
        if size + octets > width:
            parts.append("".join(current))
            current, size, width = [], 0, limit - 1
        current.append(char)
        size += octets
    parts.append("".join(current))
    return (CRLF + " ").join(parts)


def _new_uid(now: datetime, taken: t.Set[str]) -> str:
    epoch_ms = int(now.timestamp() * 1000)
    while True:
        uid = f"{epoch_ms}-{secrets.token_hex(6)}@{UID_DOMAIN}"
        if uid not in taken:
            taken.add(uid)
            return uid


def _vevent_lines(event: CalendarEvent, uid: str, stamp: str) -> list[str]:
    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{stamp}",
        f"DTSTART:{format_ics_datetime(event.start_time)}",
        f"DTEND:{format_ics_datetime(event.end_time)}",
        f"SUMMARY:{ics_escape(event.title)}",
        f"DESCRIPTION:{ics_escape(event.description)}",
        f"LOCATION:{ics_escape(event.location)}",
    ]
    if event.reminder_minutes is not None:
        lines += [
            "BEGIN:VALARM",
            f"TRIGGER:-PT{int(event.reminder_minutes)}M",
            "ACTION:DISPLAY",
            f"DESCRIPTION:{ics_escape(event.title)}",
            "END:VALARM",
        ]
    lines.append("END:VEVENT")
    return lines


def encode_ics(events: t.Sequence[CalendarEvent], now: t.Optional[datetime] = None) -> str:
    """Encode events as a single ICS document.

    :param events: At least one event.
    :param now: Creation timestamp for DTSTAMP and UIDs; defaults to the current time.
    :return: The document with CRLF line endings, long lines folded.
    :raises EmptyCalendarError: If ``events`` is empty.
    """
    if not events:
        raise EmptyCalendarError("No events to export")

    now = now or utcnow()
    stamp = format_ics_datetime(now)
    uids: set[str] = set()

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODUCT_ID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for event in events:
        lines.extend(_vevent_lines(event, _new_uid(now, uids), stamp))
    lines.append("END:VCALENDAR")
    return CRLF.join(fold_line(line) for line in lines) + CRLF
