# -*- coding: utf-8 -*-
"""Tests for the extraction adapter: lenient conversion and the large-PDF fallback."""
import json
from datetime import datetime, timezone

import pytest

import syllabus_server.extractor as extractor_module
from syllabus_server.extractor import FALLBACK_TEXT_LIMIT, convert_oracle_data

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_extract_from_text_returns_typed_events(make_oracle, make_extractor, sample_response) -> None:
    oracle = make_oracle([sample_response])
    result = make_extractor(oracle).extract_from_text("syllabus text", syllabus_id=7)

    assert oracle.calls[0]["prompt"] == "FULL"
    assert oracle.calls[0]["text"] == "syllabus text"
    assert result.syllabus_id == 7
    assert result.course_code == "CS 101"
    assert result.instructor == "Dr. Ada Lovelace"
    assert [e.event_type for e in result.events] == ["assignment", "midterm", "quiz"]
    assert result.events[0].due_date == datetime(2025, 1, 20, tzinfo=timezone.utc)
    assert result.events[2].due_date == datetime(2025, 2, 3, tzinfo=timezone.utc)


def test_unparseable_due_date_keeps_the_event() -> None:
    data = {"events": [{"eventType": "exam", "title": "Final", "dueDate": "13/40/2025"}]}
    result = convert_oracle_data(data, now=NOW)
    assert len(result.events) == 1
    assert result.events[0].due_date == NOW


def test_prose_response_degrades_to_empty_result(make_oracle, make_extractor) -> None:
    oracle = make_oracle(["Sorry, I can't help with that document."])
    result = make_extractor(oracle).extract_from_text("text")
    assert result.events == []
    assert result.course_code is None and result.course_name is None
    assert result.instructor is None and result.term is None
    assert result.is_empty


def test_oracle_error_on_text_degrades_to_empty_result(make_oracle, make_extractor) -> None:
    oracle = make_oracle([TimeoutError("request timed out")])
    result = make_extractor(oracle).extract_from_text("text")
    assert result.is_empty
    assert len(oracle.calls) == 1


def test_lenient_conversion() -> None:
    data = {
        "courseCode": "  ",
        "events": [
            "not an object",
            {"eventType": "Workshop", "title": "", "dueDate": "2025-04-01"},
            {"eventType": "LAB", "title": "Lab 3", "dueDate": "2025-04-02", "description": "  "},
        ],
    }
    result = convert_oracle_data(data, now=NOW)
    assert result.course_code is None
    assert [(e.event_type, e.title) for e in result.events] == [("other", "Untitled other"), ("lab", "Lab 3")]
    assert result.events[1].description is None

    assert convert_oracle_data({"events": "none"}).events == []


def test_small_pdf_failure_is_not_retried(make_oracle, make_extractor) -> None:
    oracle = make_oracle([ConnectionError("boom")])
    result = make_extractor(oracle, threshold=1024).extract_from_pdf(b"%PDF" + b"x" * 100)
    assert result.is_empty
    assert len(oracle.calls) == 1


def test_large_pdf_failure_retries_with_reduced_prompt_and_text(
        make_oracle, make_extractor, sample_response, monkeypatch) -> None:
    monkeypatch.setattr(extractor_module, "extract_pdf_text", lambda content: "y" * (FALLBACK_TEXT_LIMIT + 500))
    oracle = make_oracle([ConnectionError("payload too large"), sample_response])
    pdf = b"%PDF" + b"x" * 4096

    result = make_extractor(oracle, threshold=1024).extract_from_pdf(pdf, syllabus_id=3, filename="big.pdf")

    assert len(oracle.calls) == 2
    first, retry = oracle.calls
    assert first["prompt"] == "FULL" and first["pdf_bytes"] == pdf and first["filename"] == "big.pdf"
    assert retry["prompt"] == "REDUCED"
    assert retry["pdf_bytes"] is None
    assert len(retry["text"]) == FALLBACK_TEXT_LIMIT
    assert len(result.events) == 3


def test_large_pdf_retry_sends_bytes_when_no_text(make_oracle, make_extractor, sample_response, monkeypatch) -> None:
    def unreadable(content: bytes) -> str:
        raise ValueError("not a PDF")

    monkeypatch.setattr(extractor_module, "extract_pdf_text", unreadable)
    oracle = make_oracle([ConnectionError("boom"), sample_response])
    pdf = b"x" * 2048

    result = make_extractor(oracle, threshold=1024).extract_from_pdf(pdf)

    assert oracle.calls[1]["prompt"] == "REDUCED"
    assert oracle.calls[1]["pdf_bytes"] == pdf
    assert result.course_code == "CS 101"


def test_failed_retry_degrades_to_empty_result(make_oracle, make_extractor, monkeypatch) -> None:
    monkeypatch.setattr(extractor_module, "extract_pdf_text", lambda content: "")
    oracle = make_oracle([ConnectionError("boom"), ConnectionError("still down")])
    result = make_extractor(oracle, threshold=10).extract_from_pdf(b"x" * 100)
    assert result.is_empty
    assert len(oracle.calls) == 2


@pytest.mark.parametrize("raw", ["[1, 2, 3]", "```\n{not json}\n```", ""])
def test_malformed_output_never_raises(make_oracle, make_extractor, raw: str) -> None:
    result = make_extractor(make_oracle([raw])).extract_from_text("text")
    assert result.events == []


def test_to_dict_is_json_serializable(make_oracle, make_extractor, sample_response) -> None:
    result = make_extractor(make_oracle([sample_response])).extract_from_text("text")
    data = json.loads(json.dumps(result.to_dict()))
    assert data["events"][0]["due_date"] == "2025-01-20T00:00:00+00:00"
