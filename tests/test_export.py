# -*- coding: utf-8 -*-
"""Tests for calendar export: event mapping, the ICS encoder and provider payloads."""
import re
from datetime import datetime, timedelta, timezone

import pytest

from academic_planner.models import SessionDraft
from productivity_server.ics import encode_ics
from productivity_server.mapping import (build_calendar_events, course_event_to_calendar_event,
                                         study_session_to_calendar_event)
from productivity_server.models import CalendarEvent, ReminderPolicy
from productivity_server.providers import build_provider_payloads, to_google_event, to_outlook_event
from services.shared.errors import EmptyCalendarError, ValidationError
from syllabus_server.models import ExtractedEvent

DUE = datetime(2025, 2, 10, 14, 0, tzinfo=timezone.utc)
NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)

UNESCAPED = re.compile(r"(?<!\\)[,;]")


@pytest.fixture
def calendar_events() -> list[CalendarEvent]:
    exam = ExtractedEvent("midterm", "Midterm, Part 1; Chapters 1-4", DUE, "Room 101, bring ID;\nno notes")
    homework = ExtractedEvent("assignment", "Homework 1", DUE - timedelta(days=7))
    session = SessionDraft(
        title="Prepare for Midterm",
        start_time=DUE - timedelta(days=2),
        end_time=DUE - timedelta(days=2) + timedelta(hours=2),
        description="Study session to prepare for upcoming midterm: Midterm",
    )
    return build_calendar_events([exam, homework], [session], course_code="CS 101")


def test_course_event_mapping() -> None:
    exam = course_event_to_calendar_event(ExtractedEvent("final", "Final Exam", DUE), course_code="CS 101")
    assert exam.title == "CS 101: Final Exam"
    assert exam.end_time - exam.start_time == timedelta(hours=1)
    assert exam.color_id == "11"
    assert exam.reminder_minutes == 7 * 24 * 60

    quiz = course_event_to_calendar_event(ExtractedEvent("quiz", "Quiz 1", DUE))
    assert quiz.title == "Quiz 1"
    assert quiz.color_id == "5"
    assert quiz.reminder_minutes == 24 * 60


def test_session_mapping_uses_policy() -> None:
    draft = SessionDraft("Study Session 1", DUE, DUE + timedelta(hours=2))
    mapped = study_session_to_calendar_event(draft, ReminderPolicy(session_minutes=15))
    assert mapped.color_id == "9"
    assert mapped.reminder_minutes == 15
    assert mapped.location is None


def test_calendar_event_rejects_backwards_times() -> None:
    with pytest.raises(ValidationError):
        CalendarEvent("Backwards", DUE, DUE - timedelta(minutes=1))


def test_ics_document_structure(calendar_events) -> None:
    document = encode_ics(calendar_events, now=NOW)

    assert document.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n")
    assert document.endswith("END:VCALENDAR\r\n")
    assert "\n" not in document.replace("\r\n", "")
    assert document.count("BEGIN:VEVENT") == len(calendar_events) == 3
    assert document.count("END:VEVENT") == 3
    assert "DTSTAMP:20250101T000000Z" in document
    assert "PRODID:-//Syllabus Study Planner//EN" in document


def test_ics_events_end_after_they_start(calendar_events) -> None:
    lines = encode_ics(calendar_events, now=NOW).split("\r\n")
    starts = [line.split(":", 1)[1] for line in lines if line.startswith("DTSTART:")]
    ends = [line.split(":", 1)[1] for line in lines if line.startswith("DTEND:")]
    assert len(starts) == len(ends) == 3
    for start, end in zip(starts, ends):
        assert end >= start
        assert start.endswith("Z")


def test_ics_text_is_escaped(calendar_events) -> None:
    lines = encode_ics(calendar_events, now=NOW).split("\r\n")
    text_lines = [line for line in lines if line.split(":", 1)[0] in ("SUMMARY", "DESCRIPTION", "LOCATION")]
    for line in text_lines:
        assert not UNESCAPED.search(line.split(":", 1)[1]), line
    assert "SUMMARY:CS 101: Midterm\\, Part 1\\; Chapters 1-4" in lines
    assert "DESCRIPTION:Room 101\\, bring ID\\;\\nno notes" in lines


def test_ics_lone_carriage_return_cannot_start_a_property() -> None:
    event = CalendarEvent("Title\rX-INJECTED:1", DUE, DUE + timedelta(hours=1), description="one\rtwo")
    document = encode_ics([event], now=NOW)

    assert "\r" not in document.replace("\r\n", "")
    lines = document.split("\r\n")
    assert "SUMMARY:Title\\nX-INJECTED:1" in lines
    assert "DESCRIPTION:one\\ntwo" in lines
    assert not any(line.startswith("X-INJECTED") for line in lines)


def test_ics_long_lines_are_folded() -> None:
    description = "Chapters 1-4, " * 14 + "é" * 30
    event = CalendarEvent("Midterm", DUE, DUE + timedelta(hours=1), description=description)
    document = encode_ics([event], now=NOW)

    physical = document.split("\r\n")
    assert all(len(line.encode("utf-8")) <= 75 for line in physical)
    assert any(line.startswith(" ") for line in physical)

    unfolded = document.replace("\r\n ", "").split("\r\n")
    assert "DESCRIPTION:" + description.replace(",", "\\,") in unfolded
    assert "SUMMARY:Midterm" in unfolded


def test_ics_alarms_and_uids(calendar_events) -> None:
    document = encode_ics(calendar_events, now=NOW)
    assert document.count("BEGIN:VALARM") == 3
    assert "TRIGGER:-PT10080M" in document
    assert "TRIGGER:-PT1440M" in document
    assert "TRIGGER:-PT30M" in document

    uids = re.findall(r"^UID:(.+)$", document, flags=re.MULTILINE)
    assert len(uids) == len(set(uids)) == 3
    assert all(uid.strip().endswith("@syllabus-study-planner") for uid in uids)


def test_ics_without_reminder_has_no_alarm() -> None:
    document = encode_ics([CalendarEvent("Office hours", DUE, DUE + timedelta(hours=1))], now=NOW)
    assert "BEGIN:VALARM" not in document
    assert "DESCRIPTION:\r\n" in document


def test_empty_calendar_is_an_error() -> None:
    with pytest.raises(EmptyCalendarError):
        encode_ics([])


def test_google_payload(calendar_events) -> None:
    payload = to_google_event(calendar_events[0], timezone="America/New_York")
    assert payload["summary"] == "CS 101: Midterm, Part 1; Chapters 1-4"
    assert payload["start"] == {"dateTime": "2025-02-10T14:00:00Z", "timeZone": "America/New_York"}
    assert payload["end"]["dateTime"] == "2025-02-10T15:00:00Z"
    assert payload["colorId"] == "11"
    assert payload["reminders"] == {"useDefault": False, "overrides": [{"method": "popup", "minutes": 10080}]}

    plain = to_google_event(CalendarEvent("Office hours", DUE, DUE + timedelta(hours=1)))
    assert plain["colorId"] == "1"
    assert plain["reminders"] == {"useDefault": True}
    assert plain["description"] == ""


def test_outlook_payload(calendar_events) -> None:
    payload = to_outlook_event(calendar_events[2])
    assert payload["subject"] == "Prepare for Midterm"
    assert payload["body"]["contentType"] == "text"
    assert payload["start"] == {"dateTime": "2025-02-08T14:00:00Z", "timeZone": "UTC"}
    assert payload["isReminderOn"] is True
    assert payload["reminderMinutesBeforeStart"] == 30
    assert payload["location"] == {"displayName": ""}


def test_payloads_and_ics_share_instants(calendar_events) -> None:
    lines = encode_ics(calendar_events, now=NOW).split("\r\n")
    ics_starts = [line.split(":", 1)[1] for line in lines if line.startswith("DTSTART:")]
    for provider in ("google", "outlook"):
        payloads = build_provider_payloads(calendar_events, provider)
        starts = [p["start"]["dateTime"].replace("-", "").replace(":", "") for p in payloads]
        assert starts == ics_starts


def test_unknown_provider() -> None:
    with pytest.raises(ValidationError) as info:
        build_provider_payloads([], "caldav")
    assert info.value.errors == {"provider": "unsupported"}
