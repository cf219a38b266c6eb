# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from services.shared.errors import ValidationError
from services.shared.utils import SECONDS_PER_DAY, ensure_utc


@dataclass
class PlanningWindow:
    """Date range sessions are spread across. ``start`` must precede ``end``."""
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        self.start = ensure_utc(self.start)
        self.end = ensure_utc(self.end)
        if self.start >= self.end:
            raise ValidationError("Start date must be before end date", {"end": "must be after start"})

    @property
    def total_days(self) -> int:
        """Whole days between start and end, partial days truncated."""
        return int((self.end - self.start).total_seconds() // SECONDS_PER_DAY)


@dataclass
class SessionDraft:
    """A study session that has been scheduled but not persisted."""
    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    event_type: Optional[str] = None       # type of the course event this prepares for
    related_event_id: Optional[int] = None

    def as_fields(self) -> dict:
        """Keyword arguments for ``Storage.create_study_session``."""
        return {
            "title": self.title,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "description": self.description,
            "event_type": self.event_type,
            "related_event_id": self.related_event_id,
        }


@dataclass
class BatchFailure:
    index: int
    draft: SessionDraft
    error: str


@dataclass
class BatchResult:
    """Outcome of a best-effort batch write: what was stored and what was not."""
    created: list = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
