# -*- coding: utf-8 -*-
"""Tests for study-session scheduling and the best-effort batch writer."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from academic_planner.batch import persist_sessions
from academic_planner.models import PlanningWindow, SessionDraft
from academic_planner.scheduler import find_nearby_event, generate_study_sessions
from planner_store.memory import MemoryStorage
from services.shared.errors import StorageError, ValidationError

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


@dataclass
class Event:
    title: str
    event_type: str
    due_date: datetime
    id: Optional[int] = None


def test_sessions_are_evenly_spaced() -> None:
    drafts = generate_study_sessions(START, datetime(2025, 3, 2, tzinfo=timezone.utc), 3, 2)

    assert len(drafts) == 25
    for previous, current in zip(drafts, drafts[1:]):
        assert current.start_time - previous.start_time == timedelta(days=2)
    assert all(d.end_time - d.start_time == timedelta(hours=2) for d in drafts)
    assert drafts[0].start_time == START
    assert drafts[0].title == "Study Session 1"
    assert drafts[-1].title == "Study Session 25"
    assert drafts[0].description == "Regular study session for your course"


def test_course_code_in_regular_description() -> None:
    drafts = generate_study_sessions(START, START + timedelta(days=7), 1, 1.5, course_code="CS 101")
    assert len(drafts) == 1
    assert drafts[0].description == "Regular study session for CS 101"
    assert drafts[0].end_time - drafts[0].start_time == timedelta(hours=1, minutes=30)


def test_window_too_short_gives_no_sessions() -> None:
    assert generate_study_sessions(START, START + timedelta(days=2), 3, 2) == []
    # A partial day does not count.
    assert generate_study_sessions(START, START + timedelta(hours=23), 7, 1) == []


@pytest.mark.parametrize(
    "start, end, spw, hps, field",
    [
        (START, START, 3, 2, "end"),
        (START + timedelta(days=1), START, 3, 2, "end"),
        (START, START + timedelta(days=30), 0, 2, "sessions_per_week"),
        (START, START + timedelta(days=30), 8, 2, "sessions_per_week"),
        (START, START + timedelta(days=30), 3, 0.5, "hours_per_session"),
        (START, START + timedelta(days=30), 3, 9, "hours_per_session"),
    ],
)
def test_invalid_input_is_rejected(start, end, spw, hps, field) -> None:
    with pytest.raises(ValidationError) as info:
        generate_study_sessions(start, end, spw, hps)
    assert field in info.value.errors


def test_planning_window_normalises_naive_dates() -> None:
    window = PlanningWindow(datetime(2025, 1, 1), datetime(2025, 1, 4, 12))
    assert window.start.tzinfo is timezone.utc
    assert window.total_days == 3


def test_proximity_counts_whole_days() -> None:
    exam = Event("Midterm", "exam", START + timedelta(days=10))
    assert find_nearby_event(START + timedelta(days=9), [exam]) is exam
    assert find_nearby_event(START + timedelta(days=12), [exam]) is exam
    assert find_nearby_event(START + timedelta(days=6, hours=1), [exam]) is exam
    assert find_nearby_event(START + timedelta(days=6), [exam]) is None
    assert find_nearby_event(START + timedelta(days=20), [exam]) is None


def test_first_matching_event_wins() -> None:
    quiz = Event("Quiz 1", "quiz", START + timedelta(days=3))
    exam = Event("Midterm", "exam", START + timedelta(days=1))
    assert find_nearby_event(START, [quiz, exam]) is quiz
    assert find_nearby_event(START, [exam, quiz]) is exam


def test_sessions_near_events_prepare_for_them() -> None:
    exam = Event("Midterm", "exam", START + timedelta(days=10), id=42)
    drafts = generate_study_sessions(START, START + timedelta(days=21), 3, 2, events=[exam])

    # 9 sessions, 2 days apart: slots on days 0, 2, ..., 16.
    assert len(drafts) == 9
    by_day = {(d.start_time - START).days: d for d in drafts}
    for day in (8, 10, 12):
        assert by_day[day].title == "Prepare for Midterm"
        assert by_day[day].description == "Study session to prepare for upcoming exam: Midterm"
        assert by_day[day].event_type == "exam"
        assert by_day[day].related_event_id == 42
    for day in (0, 2, 4, 6, 14, 16):
        assert by_day[day].title.startswith("Study Session")
        assert by_day[day].related_event_id is None


class FlakyStorage(MemoryStorage):
    """Fails the write of every session whose title is in ``failing``."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = failing

    def create_study_session(self, study_plan_id, title, start_time, end_time, **fields):
        if title in self.failing:
            raise StorageError(f"disk full while writing {title}")
        return super().create_study_session(study_plan_id, title, start_time, end_time, **fields)


def _plan(storage: MemoryStorage) -> int:
    user = storage.create_user("ada")
    syllabus = storage.create_syllabus(user.id, "cs101.pdf")
    return storage.create_study_plan(syllabus.id, user.id, "Plan").id


def test_batch_write_continues_past_failures() -> None:
    storage = FlakyStorage({"Study Session 2"})
    plan_id = _plan(storage)
    drafts = generate_study_sessions(START, START + timedelta(days=7), 3, 2)

    result = persist_sessions(storage, plan_id, drafts)

    assert not result.ok
    assert [s.title for s in result.created] == ["Study Session 1", "Study Session 3"]
    assert len(result.failures) == 1
    assert result.failures[0].index == 1
    assert "disk full" in result.failures[0].error
    assert [s.title for s in storage.get_study_sessions(plan_id)] == ["Study Session 1", "Study Session 3"]


def test_batch_write_reports_invalid_drafts() -> None:
    storage = MemoryStorage()
    plan_id = _plan(storage)
    good = SessionDraft("Good", START, START + timedelta(hours=1))
    backwards = SessionDraft("Backwards", START, START - timedelta(hours=1))

    result = persist_sessions(storage, plan_id, [backwards, good])

    assert [s.title for s in result.created] == ["Good"]
    assert result.failures[0].draft is backwards
