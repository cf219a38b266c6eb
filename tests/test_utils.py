# -*- coding: utf-8 -*-
"""Tests for the date and text helpers."""
from datetime import datetime, timedelta, timezone

import pytest

from services.shared.utils import (
    days_between,
    ensure_utc,
    format_date,
    format_file_size,
    format_ics_datetime,
    format_iso_utc,
    get_initials,
    ics_escape,
    parse_due_date,
    slugify,
    time_distance,
    truncate_text,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_ensure_utc_handles_naive_and_aware() -> None:
    naive = datetime(2025, 1, 1, 9, 0)
    assert ensure_utc(naive) == datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    eastern = timezone(timedelta(hours=-5))
    assert ensure_utc(datetime(2025, 1, 1, 9, 0, tzinfo=eastern)).hour == 14


def test_format_date() -> None:
    assert format_date(datetime(2025, 1, 5)) == "Jan 5, 2025"
    assert format_date("not a date") == "Invalid date"


def test_days_between_is_absolute() -> None:
    assert days_between(NOW, NOW + timedelta(days=3)) == 3
    assert days_between(NOW + timedelta(days=3), NOW) == 3


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(hours=2), "Today"),
        (timedelta(days=1), "Tomorrow"),
        (timedelta(days=-1), "Yesterday"),
        (timedelta(days=3), "in 3 days"),
        (timedelta(days=-14), "2 weeks ago"),
        (timedelta(days=60), "in 2 months"),
        (timedelta(days=400), "in 1 year"),
    ],
)
def test_time_distance(delta: timedelta, expected: str) -> None:
    assert time_distance(NOW + delta, now=NOW) == expected


def test_text_helpers() -> None:
    assert truncate_text("short", 10) == "short"
    assert truncate_text("a" * 12, 10) == "a" * 10 + "..."
    assert get_initials("Ada Byron Lovelace") == "AB"
    assert get_initials("") == ""
    assert format_file_size(0) == "0 Bytes"
    assert format_file_size(2621440) == "2.5 MB"
    assert slugify("Midterm Prep: CS 101!") == "midterm-prep-cs-101"
    assert slugify("!!!") == "calendar"


def test_ics_and_iso_timestamps_share_the_instant() -> None:
    eastern = timezone(timedelta(hours=-5))
    dt = datetime(2025, 1, 1, 9, 30, 15, tzinfo=eastern)
    assert format_ics_datetime(dt) == "20250101T143015Z"
    assert format_iso_utc(dt) == "2025-01-01T14:30:15Z"


def test_ics_escape_order_and_newlines() -> None:
    assert ics_escape("a,b;c") == "a\\,b\\;c"
    assert ics_escape("line1\r\nline2\nline3") == "line1\\nline2\\nline3"
    assert ics_escape("a\rb") == "a\\nb"
    assert ics_escape(None) == ""


@pytest.mark.parametrize("text", ["", "plain text", "back\\slash stays", "Exam: room 101 (bring ID)"])
def test_ics_escape_is_identity_without_special_characters(text: str) -> None:
    assert ics_escape(text) == text


def test_parse_due_date_iso_is_midnight_utc() -> None:
    assert parse_due_date("2025-01-20") == datetime(2025, 1, 20, tzinfo=timezone.utc)


def test_parse_due_date_positional_two_digit_years() -> None:
    # Day > 12 rules out the day-first reading.
    assert parse_due_date("02/13/25", now=NOW) == datetime(2025, 2, 13, tzinfo=timezone.utc)
    assert parse_due_date("12/31/99", now=NOW).year == 1999


def test_parse_due_date_falls_back_to_now() -> None:
    assert parse_due_date("13/40/2025", now=NOW) == NOW
    assert parse_due_date("sometime next week-ish", now=NOW) == NOW
    assert parse_due_date(None, now=NOW) == NOW


def test_parse_due_date_passes_datetimes_through() -> None:
    assert parse_due_date(NOW) == NOW
    assert parse_due_date(datetime(2025, 5, 1)) == datetime(2025, 5, 1, tzinfo=timezone.utc)
