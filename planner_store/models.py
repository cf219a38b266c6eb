"""
Persisted entities.

Both storage backends hand out these dataclasses, never ORM rows, so callers
see identical values whichever backend is configured.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


SYLLABUS_STATUSES = ("uploaded", "processed", "error")
TERMINAL_STATUSES = ("processed", "error")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass
class User:
    id: int
    username: str
    created_at: datetime
    password: Optional[str] = None  # empty for OAuth users
    display_name: Optional[str] = None
    initials: Optional[str] = None
    email: Optional[str] = None
    google_id: Optional[str] = None
    profile_image_url: Optional[str] = None
    auth_provider: Optional[str] = None
    role: str = "user"
    subscription_status: str = "free"
    subscription_expiry: Optional[datetime] = None


@dataclass
class OAuthToken:
    id: int
    user_id: int
    provider: str  # 'google', 'microsoft', ...
    access_token: str
    created_at: datetime
    updated_at: datetime
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None


@dataclass
class Syllabus:
    """
    An uploaded syllabus and what was extracted from it.

    ``status`` moves from ``uploaded`` to ``processed`` or ``error`` and
    stays there.
    """
    id: int
    user_id: int
    filename: str
    uploaded_at: datetime
    status: str = "uploaded"
    course_code: Optional[str] = None
    course_name: Optional[str] = None
    instructor: Optional[str] = None
    term: Optional[str] = None
    text_content: Optional[str] = None
    # Course meeting schedule
    first_day_of_class: Optional[datetime] = None
    last_day_of_class: Optional[datetime] = None
    meeting_days: List[str] = field(default_factory=list)
    meeting_time_start: Optional[str] = None  # "HH:MM" 24h
    meeting_time_end: Optional[str] = None    # "HH:MM" 24h
    # Calendar integration
    calendar_provider: Optional[str] = None
    calendar_integrated: bool = False


@dataclass
class CourseEvent:
    id: int
    syllabus_id: int
    title: str
    event_type: str
    due_date: datetime
    created_at: datetime
    description: Optional[str] = None


@dataclass
class StudyPlan:
    id: int
    syllabus_id: int
    user_id: int
    title: str
    created_at: datetime
    description: Optional[str] = None
    calendar_integrated: bool = False


@dataclass
class StudySession:
    id: int
    study_plan_id: int
    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    calendar_event_id: Optional[str] = None  # set once, when synced externally
    location: Optional[str] = None
    event_type: Optional[str] = None
    related_event_id: Optional[int] = None
