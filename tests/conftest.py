# -*- coding: utf-8 -*-
"""Shared fixtures: a scripted oracle, both storage backends and an app context."""
import json
import typing as t

import pytest

from planner_store.memory import MemoryStorage
from planner_store.sql import SqlStorage
from services.planner_service.pipeline import AppContext
from services.shared.config import Settings
from syllabus_server.extractor import SyllabusExtractor


SAMPLE_ORACLE_DATA = {
    "courseCode": "CS 101",
    "courseName": "Introduction to Programming",
    "instructor": "Dr. Ada Lovelace",
    "term": "Spring 2025",
    "events": [
        {"eventType": "assignment", "title": "Homework 1", "dueDate": "2025-01-20", "description": "Loops"},
        {"eventType": "Midterm", "title": "Midterm Exam", "dueDate": "2025-02-10", "description": None},
        {"eventType": "quiz", "title": "Quiz 1", "dueDate": "02/03/2025"},
    ],
}


class FakeOracle:
    """Oracle that replays scripted responses and records every call."""

    def __init__(self, responses: t.Optional[list] = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, t.Any]] = []

    def complete(self, prompt, *, text=None, pdf_bytes=None, filename=None) -> str:
        self.calls.append({"prompt": prompt, "text": text, "pdf_bytes": pdf_bytes, "filename": filename})
        if not self.responses:
            raise RuntimeError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sample_response() -> str:
    return json.dumps(SAMPLE_ORACLE_DATA)


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="test-key", storage_backend="memory", pdf_fallback_threshold=1024)


def _extractor(oracle: FakeOracle, threshold: int = 1024) -> SyllabusExtractor:
    return SyllabusExtractor(oracle, fallback_threshold=threshold, prompt="FULL", fallback_prompt="REDUCED")


@pytest.fixture
def make_oracle():
    return FakeOracle


@pytest.fixture
def make_extractor():
    return _extractor


@pytest.fixture(params=["memory", "sql"])
def storage(request):
    """Each storage test runs against both backends."""
    if request.param == "memory":
        backend = MemoryStorage()
    else:
        backend = SqlStorage("sqlite://")
    yield backend
    backend.close()


@pytest.fixture
def oracle(sample_response) -> FakeOracle:
    return FakeOracle([sample_response])


@pytest.fixture
def context(settings, oracle) -> AppContext:
    return AppContext(settings=settings, storage=MemoryStorage(), extractor=_extractor(oracle))
