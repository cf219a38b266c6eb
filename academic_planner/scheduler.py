# -*- coding: utf-8 -*-
"""
Study-session scheduling.

Sessions are spread evenly over a planning window at a weekly cadence and,
where a course event falls close to a slot, named after that event.
"""
from __future__ import annotations

import logging
import typing as t
from datetime import datetime, timedelta

from services.shared.errors import ValidationError
from services.shared.utils import SECONDS_PER_DAY, ensure_utc
from .models import PlanningWindow, SessionDraft

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_DAYS = 3
MAX_SESSIONS_PER_WEEK = 7
MAX_HOURS_PER_SESSION = 8


class DatedEvent(t.Protocol):
    """Anything with a title, a type and a due date: stored or freshly extracted events."""
    title: str
    event_type: str
    due_date: datetime


def _check_cadence(sessions_per_week: int, hours_per_session: float) -> None:
    errors = {}
    if not 1 <= sessions_per_week <= MAX_SESSIONS_PER_WEEK:
        errors["sessions_per_week"] = f"must be between 1 and {MAX_SESSIONS_PER_WEEK}"
    if not 1 <= hours_per_session <= MAX_HOURS_PER_SESSION:
        errors["hours_per_session"] = f"must be between 1 and {MAX_HOURS_PER_SESSION}"
    if errors:
        raise ValidationError("Invalid study cadence", errors)


def _whole_days_apart(a: datetime, b: datetime) -> int:
    return int(abs((a - b).total_seconds()) // SECONDS_PER_DAY)


def find_nearby_event(
    slot: datetime,
    events: t.Iterable[DatedEvent],
    proximity_days: int = DEFAULT_PROXIMITY_DAYS,
) -> t.Optional[DatedEvent]:
    """Return the first event due within ``proximity_days`` of ``slot``, in iteration order."""
    for event in events:
        if _whole_days_apart(ensure_utc(event.due_date), slot) <= proximity_days:
            return event
    return None


def generate_study_sessions(
    start: datetime,
    end: datetime,
    sessions_per_week: int,
    hours_per_session: float,
    events: t.Sequence[DatedEvent] = (),
    course_code: t.Optional[str] = None,
    proximity_days: int = DEFAULT_PROXIMITY_DAYS,
) -> list[SessionDraft]:
    """Lay out study sessions across a date range.

    :param start: First day of the planning window.
    :param end: Last day of the planning window; must be after ``start``.
    :param sessions_per_week: Weekly cadence, 1 to 7.
    :param hours_per_session: Length of each session in hours, 1 to 8.
    :param events: Known course events, used to title sessions that fall near one.
    :param course_code: Used in the description of sessions with no nearby event.
    :param proximity_days: How close (in whole days) an event must be to a slot.
    :return: Drafts in chronological order; empty when the window is too short
        for a single session.
    :raises ValidationError: On an empty window or an out-of-range cadence.
    """
    window = PlanningWindow(start, end)
    _check_cadence(sessions_per_week, hours_per_session)

    total_days = window.total_days
    count = total_days * sessions_per_week // 7
    if count == 0:
        logger.info("Planning window of %d day(s) is too short for any session", total_days)
        return []

    spacing = timedelta(days=total_days // count)
    duration = timedelta(hours=hours_per_session)
    events = list(events)

    drafts: list[SessionDraft] = []
    for i in range(count):
        slot = window.start + i * spacing
        nearby = find_nearby_event(slot, events, proximity_days)
        if nearby is not None:
            draft = SessionDraft(
                title=f"Prepare for {nearby.title}",
                start_time=slot,
                end_time=slot + duration,
                description=f"Study session to prepare for upcoming {nearby.event_type}: {nearby.title}",
                event_type=nearby.event_type,
                related_event_id=getattr(nearby, "id", None),
            )
        else:
            draft = SessionDraft(
                title=f"Study Session {i + 1}",
                start_time=slot,
                end_time=slot + duration,
                description=f"Regular study session for {course_code or 'your course'}",
            )
        drafts.append(draft)

    logger.debug("Generated %d session(s), %s apart", count, spacing)
    return drafts
