"""
Shared Pydantic models for REST API serialization.

Responses are validated straight from the storage dataclasses
(``from_attributes``), so field names match the dataclasses one to one.
"""
from __future__ import annotations

import typing as t
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


CalendarProvider = t.Literal["google", "outlook"]


class _FromEntity(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Entities
class UserResponse(_FromEntity):
    id: int
    username: str
    display_name: t.Optional[str] = None
    initials: t.Optional[str] = None
    email: t.Optional[str] = None
    role: str = "user"
    subscription_status: str = "free"
    created_at: datetime


class SyllabusResponse(_FromEntity):
    id: int
    user_id: int
    filename: str
    status: str
    uploaded_at: datetime
    course_code: t.Optional[str] = None
    course_name: t.Optional[str] = None
    instructor: t.Optional[str] = None
    term: t.Optional[str] = None
    first_day_of_class: t.Optional[datetime] = None
    last_day_of_class: t.Optional[datetime] = None
    meeting_days: list[str] = Field(default_factory=list)
    meeting_time_start: t.Optional[str] = None  # "HH:MM" 24h
    meeting_time_end: t.Optional[str] = None    # "HH:MM" 24h
    calendar_provider: t.Optional[str] = None
    calendar_integrated: bool = False


class CourseEventResponse(_FromEntity):
    id: int
    syllabus_id: int
    title: str
    event_type: str
    due_date: datetime
    description: t.Optional[str] = None


class StudyPlanResponse(_FromEntity):
    id: int
    syllabus_id: int
    user_id: int
    title: str
    description: t.Optional[str] = None
    created_at: datetime
    calendar_integrated: bool = False


class StudySessionResponse(_FromEntity):
    id: int
    study_plan_id: int
    title: str
    start_time: datetime
    end_time: datetime
    description: t.Optional[str] = None
    calendar_event_id: t.Optional[str] = None
    location: t.Optional[str] = None
    event_type: t.Optional[str] = None
    related_event_id: t.Optional[int] = None


# Request/Response Models for API endpoints
class CreateUserRequest(BaseModel):
    username: str = Field(min_length=1)
    display_name: t.Optional[str] = None
    email: t.Optional[str] = None


class ExtractTextRequest(BaseModel):
    """Request model for extracting events from pasted syllabus text."""
    text: str = Field(min_length=1)


class UploadResponse(BaseModel):
    syllabus_id: int
    status: str = "processing"
    message: str = "Syllabus uploaded; extraction is running in the background."


class SyllabusDetailResponse(BaseModel):
    syllabus: SyllabusResponse
    events: list[CourseEventResponse] = Field(default_factory=list)


class ScheduleUpdateRequest(BaseModel):
    """Recurring meeting schedule of a course."""
    first_day_of_class: t.Optional[datetime] = None
    last_day_of_class: t.Optional[datetime] = None
    meeting_days: t.Optional[list[str]] = None  # ["monday", "wednesday"]
    meeting_time_start: t.Optional[str] = None
    meeting_time_end: t.Optional[str] = None


class CreateStudyPlanRequest(BaseModel):
    syllabus_id: int
    title: str = Field(min_length=1)
    description: t.Optional[str] = None
    start_date: datetime
    end_date: datetime
    sessions_per_week: int = 3
    hours_per_session: float = 2


class CreateStudyPlanResponse(BaseModel):
    plan: StudyPlanResponse
    sessions: list[StudySessionResponse] = Field(default_factory=list)
    failed_sessions: int = 0


class CalendarPayloadRequest(BaseModel):
    provider: CalendarProvider
    timezone: t.Optional[str] = None  # IANA name; defaults to the configured one


class CalendarPayloadResponse(BaseModel):
    provider: CalendarProvider
    events: list[dict[str, t.Any]] = Field(default_factory=list)


class CalendarIntegrationRequest(BaseModel):
    """Confirms a sync; maps study session ids to the provider's event ids."""
    provider: t.Optional[str] = None
    calendar_event_ids: dict[int, str] = Field(default_factory=dict)
