"""
Date and text helpers shared by extraction, planning and calendar export.

All functions are pure. Datetimes produced here are timezone-aware UTC.
"""
from __future__ import annotations

import re
import typing as t
from datetime import datetime, timezone

from dateutil import parser as dt_parser


SECONDS_PER_DAY = 24 * 60 * 60

_DATE_PARTS_RE = re.compile(r"[/\-]")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def utcnow() -> datetime:
    """Current instant in UTC. Every stored timestamp comes from here."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_date(value: t.Any) -> str:
    """Format a datetime as e.g. 'Jan 5, 2025'."""
    if not isinstance(value, datetime):
        return "Invalid date"
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def days_between(start: datetime, end: datetime) -> int:
    """Absolute distance between two instants in whole days (rounded)."""
    seconds = abs((ensure_utc(end) - ensure_utc(start)).total_seconds())
    return round(seconds / SECONDS_PER_DAY)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def time_distance(value: t.Any, now: t.Optional[datetime] = None) -> str:
    """
    Human readable distance to now: 'Today', 'Tomorrow', 'in 3 days',
    '2 weeks ago', 'in 1 month', ...
    """
    if not isinstance(value, datetime):
        return "Invalid date"
    now = ensure_utc(now) if now is not None else utcnow()
    target = ensure_utc(value)

    is_past = target < now
    days = days_between(now, target)

    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday" if is_past else "Tomorrow"
    if days < 7:
        text = _plural(days, "day")
    elif days < 30:
        text = _plural(round(days / 7), "week")
    elif days < 365:
        text = _plural(round(days / 30), "month")
    else:
        text = _plural(round(days / 365), "year")
    return f"{text} ago" if is_past else f"in {text}"


def truncate_text(text: t.Optional[str], max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def get_initials(name: t.Optional[str]) -> str:
    """'John Smith' -> 'JS'."""
    if not name:
        return ""
    return "".join(part[0].upper() for part in name.split() if part)[:2]


def format_file_size(size: int) -> str:
    """Format a byte count, e.g. 2621440 -> '2.5 MB'."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 1):g} {units[index]}"


def format_ics_datetime(dt: datetime) -> str:
    """ICS UTC timestamp: YYYYMMDDTHHMMSSZ."""
    return ensure_utc(dt).strftime("%Y%m%dT%H%M%SZ")


def format_iso_utc(dt: datetime) -> str:
    """ISO-8601 UTC timestamp used by provider payloads: YYYY-MM-DDTHH:MM:SSZ."""
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def ics_escape(text: t.Optional[str]) -> str:
    """
    Escape free text for an ICS property value.

    Commas, then semicolons, then line breaks; CRLF, a lone CR and LF all
    become ``\\n``. Text containing none of those comes back unchanged.
    """
    if not text:
        return ""
    return (
        text.replace(",", "\\,")
        .replace(";", "\\;")
        .replace("\r\n", "\\n")
        .replace("\r", "\\n")
        .replace("\n", "\\n")
    )


def slugify(text: t.Optional[str], default: str = "calendar") -> str:
    slug = _SLUG_RE.sub("-", (text or "").lower()).strip("-")
    return slug or default


def _parse_positional(value: str) -> t.Optional[datetime]:
    """MM/DD/YYYY (or MM-DD-YY); two-digit years <50 are 20xx, otherwise 19xx."""
    parts = _DATE_PARTS_RE.split(value.strip())
    if len(parts) != 3:
        return None
    try:
        month, day, year = (int(p) for p in parts)
    except ValueError:
        return None
    if year < 100:
        year += 2000 if year < 50 else 1900
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_due_date(value: t.Any, now: t.Optional[datetime] = None) -> datetime:
    """
    Coerce an oracle-supplied due date into a UTC datetime.

    Tries a direct parse first, then positional MM/DD/YYYY. If neither works
    the current instant is returned as a placeholder; the event is kept so a
    human can correct the date later.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str) and value.strip():
        try:
            return ensure_utc(dt_parser.parse(value.strip()))
        except (ValueError, OverflowError):
            pass
        positional = _parse_positional(value)
        if positional is not None:
            return positional
    return ensure_utc(now) if now is not None else utcnow()
