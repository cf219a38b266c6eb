"""
Data models for calendar export.

``CalendarEvent`` is the one shape every export path reads: the ICS encoder
and the Google/Outlook payload builders all start from it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import typing as t

from services.shared.errors import ValidationError
from services.shared.utils import ensure_utc


EXAM_EVENT_TYPES = frozenset({"exam", "midterm", "final"})

# Presentation hints (Google Calendar color ids)
EXAM_COLOR = "11"
COURSE_EVENT_COLOR = "5"
STUDY_SESSION_COLOR = "9"


@dataclass
class CalendarEvent:
    """A calendar entry, independent of the calendar it ends up in."""
    title: str
    start_time: datetime
    end_time: datetime
    description: t.Optional[str] = None
    location: t.Optional[str] = None
    color_id: t.Optional[str] = None
    reminder_minutes: t.Optional[int] = None  # lead time before start

    def __post_init__(self) -> None:
        self.start_time = ensure_utc(self.start_time)
        self.end_time = ensure_utc(self.end_time)
        if self.end_time < self.start_time:
            raise ValidationError(f"Event {self.title!r} ends before it starts", {"end_time": "before start_time"})


@dataclass(frozen=True)
class ReminderPolicy:
    """Reminder lead times, in minutes."""
    exam_minutes: int = 7 * 24 * 60
    assignment_minutes: int = 24 * 60
    session_minutes: int = 30

    def for_course_event(self, event_type: str) -> int:
        if event_type in EXAM_EVENT_TYPES:
            return self.exam_minutes
        return self.assignment_minutes
