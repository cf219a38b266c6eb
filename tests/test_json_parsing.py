# -*- coding: utf-8 -*-
"""Tests for the lenient oracle-output JSON parser."""
from syllabus_server.json_parsing import isolate_object_span, parse_json_object, strip_code_fences


def test_plain_object() -> None:
    result = parse_json_object('{"courseCode": "CS 101", "events": []}')
    assert result.ok
    assert result.data == {"courseCode": "CS 101", "events": []}


def test_fenced_object_with_surrounding_prose() -> None:
    raw = 'Sure! Here is the data:\n```json\n{"term": "Fall 2024", "events": [{"title": "HW"}]}\n```\nLet me know.'
    result = parse_json_object(raw)
    assert result.ok
    assert result.data["term"] == "Fall 2024"
    assert result.data["events"][0]["title"] == "HW"


def test_prose_without_braces_is_a_tagged_failure() -> None:
    result = parse_json_object("I could not find any dates in this document.")
    assert not result.ok
    assert result.data is None
    assert result.error == "no JSON object found"


def test_empty_and_broken_input() -> None:
    assert parse_json_object("").error == "empty response"
    assert parse_json_object(None).error == "empty response"
    broken = parse_json_object('{"events": [1, 2,,]}')
    assert not broken.ok
    assert broken.error.startswith("invalid JSON")


def test_helpers() -> None:
    assert strip_code_fences("```json\n{}\n```") == "{}\n"
    assert isolate_object_span("x {a} y {b} z") == "{a} y {b}"
    assert isolate_object_span("} backwards {") is None
