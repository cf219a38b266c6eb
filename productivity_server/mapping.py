# -*- coding: utf-8 -*-
"""Map course events and study sessions onto :class:`CalendarEvent`."""
from __future__ import annotations

import typing as t
from datetime import datetime, timedelta

from .models import (COURSE_EVENT_COLOR, EXAM_COLOR, EXAM_EVENT_TYPES, STUDY_SESSION_COLOR, CalendarEvent,
                     ReminderPolicy)

COURSE_EVENT_DURATION = timedelta(hours=1)

DEFAULT_POLICY = ReminderPolicy()


class CourseEventLike(t.Protocol):
    title: str
    event_type: str
    due_date: datetime
    description: t.Optional[str]


class SessionLike(t.Protocol):
    title: str
    start_time: datetime
    end_time: datetime
    description: t.Optional[str]


def course_event_to_calendar_event(
    event: CourseEventLike,
    course_code: t.Optional[str] = None,
    policy: ReminderPolicy = DEFAULT_POLICY,
) -> CalendarEvent:
    """A course event becomes a one-hour block starting at its due time."""
    title = f"{course_code}: {event.title}" if course_code else event.title
    return CalendarEvent(
        title=title,
        start_time=event.due_date,
        end_time=event.due_date + COURSE_EVENT_DURATION,
        description=event.description,
        color_id=EXAM_COLOR if event.event_type in EXAM_EVENT_TYPES else COURSE_EVENT_COLOR,
        reminder_minutes=policy.for_course_event(event.event_type),
    )


def study_session_to_calendar_event(session: SessionLike, policy: ReminderPolicy = DEFAULT_POLICY) -> CalendarEvent:
    return CalendarEvent(
        title=session.title,
        start_time=session.start_time,
        end_time=session.end_time,
        description=session.description,
        location=getattr(session, "location", None),
        color_id=STUDY_SESSION_COLOR,
        reminder_minutes=policy.session_minutes,
    )


def build_calendar_events(
    course_events: t.Iterable[CourseEventLike] = (),
    sessions: t.Iterable[SessionLike] = (),
    course_code: t.Optional[str] = None,
    policy: ReminderPolicy = DEFAULT_POLICY,
) -> list[CalendarEvent]:
    """Course events followed by study sessions, each in the order given."""
    mapped = [course_event_to_calendar_event(e, course_code, policy) for e in course_events]
    mapped.extend(study_session_to_calendar_event(s, policy) for s in sessions)
    return mapped
