"""
Data models for syllabus extraction.

This module contains the dataclasses returned by the extraction adapter:
course metadata plus the calendar-worthy events found in a syllabus.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Iterable, List, Literal, Optional

from services.shared.utils import parse_due_date


EventType = Literal[
    "assignment",
    "homework",
    "quiz",
    "exam",
    "midterm",
    "final",
    "project",
    "presentation",
    "paper",
    "reading",
    "lab",
    "discussion",
    "other",
]

EVENT_TYPES: tuple[str, ...] = (
    "assignment",
    "homework",
    "quiz",
    "exam",
    "midterm",
    "final",
    "project",
    "presentation",
    "paper",
    "reading",
    "lab",
    "discussion",
    "other",
)


def normalize_event_type(value: object) -> str:
    """Map free-form oracle output onto the event vocabulary."""
    if not isinstance(value, str):
        return "other"
    cleaned = value.strip().lower()
    return cleaned if cleaned in EVENT_TYPES else "other"


@dataclass
class ExtractedEvent:
    """
    One dated deliverable found in a syllabus.

    ``due_date`` is always a datetime; unreadable dates were already replaced
    by a placeholder during extraction.
    """
    event_type: str
    title: str
    due_date: datetime
    description: Optional[str] = None


@dataclass
class ExtractionResult:
    """
    Course metadata and events for one syllabus.

    Metadata fields stay ``None`` when the oracle did not provide them.
    """
    course_code: Optional[str] = None
    course_name: Optional[str] = None
    instructor: Optional[str] = None
    term: Optional[str] = None
    events: List[ExtractedEvent] = field(default_factory=list)
    syllabus_id: Optional[int] = None

    @property
    def has_metadata(self) -> bool:
        return any((self.course_code, self.course_name, self.instructor, self.term))

    @property
    def is_empty(self) -> bool:
        return not self.events and not self.has_metadata

    def metadata(self) -> dict[str, Optional[str]]:
        return {
            "course_code": self.course_code,
            "course_name": self.course_name,
            "instructor": self.instructor,
            "term": self.term,
        }

    def to_dict(self) -> dict:
        """JSON-ready form; due dates as ISO-8601 strings."""
        data = asdict(self)
        for event in data["events"]:
            event["due_date"] = event["due_date"].isoformat()
        return data


def events_from_dicts(events: Iterable[dict]) -> List[ExtractedEvent]:
    """Rebuild events from the dicts produced by :meth:`ExtractionResult.to_dict`."""
    return [
        ExtractedEvent(
            event_type=normalize_event_type(e.get("event_type")),
            title=str(e.get("title") or "Untitled"),
            due_date=parse_due_date(e.get("due_date")),
            description=e.get("description"),
        )
        for e in events
    ]
