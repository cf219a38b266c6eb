"""
The storage interface and the validation rules every backend shares.

``MemoryStorage`` and ``SqlStorage`` must be indistinguishable to callers:
same defaults, same ordering, same rejections. The checks below are the
single definition of those rules; both backends call them before writing.
"""
from __future__ import annotations

import re
import typing as t
from abc import ABC, abstractmethod
from datetime import datetime

from services.shared.errors import InvalidStatusTransition, ValidationError
from services.shared.utils import ensure_utc
from .models import (SYLLABUS_STATUSES, TERMINAL_STATUSES, WEEKDAYS, CourseEvent, OAuthToken, StudyPlan,
                     StudySession, Syllabus, User)


_TIME_OF_DAY_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

USER_FIELDS = frozenset({
    "username", "password", "display_name", "initials", "email", "google_id", "profile_image_url",
    "auth_provider", "role", "subscription_status", "subscription_expiry",
})
OAUTH_TOKEN_FIELDS = frozenset({"provider", "access_token", "refresh_token", "expires_at", "scope"})
SYLLABUS_FIELDS = frozenset({
    "filename", "course_code", "course_name", "instructor", "term", "text_content", "status",
    "first_day_of_class", "last_day_of_class", "meeting_days", "meeting_time_start", "meeting_time_end",
    "calendar_provider", "calendar_integrated",
})
COURSE_EVENT_FIELDS = frozenset({"title", "description", "event_type", "due_date"})
STUDY_PLAN_FIELDS = frozenset({"title", "description", "calendar_integrated"})
STUDY_SESSION_FIELDS = frozenset({
    "title", "description", "start_time", "end_time", "calendar_event_id", "location", "event_type",
    "related_event_id",
})

DATETIME_FIELDS = frozenset({
    "subscription_expiry", "expires_at", "first_day_of_class", "last_day_of_class", "due_date",
    "start_time", "end_time",
})

# Columns that may never hold None, keyed by the entity names used in messages.
REQUIRED_FIELDS: dict[str, frozenset[str]] = {
    "user": frozenset({"username", "role", "subscription_status"}),
    "oauth token": frozenset({"provider", "access_token"}),
    "syllabus": frozenset({"filename", "status"}),
    "course event": frozenset({"title", "event_type", "due_date"}),
    "study plan": frozenset({"title"}),
    "study session": frozenset({"title", "start_time", "end_time"}),
}


def check_required(entity: str, values: t.Mapping[str, t.Any]) -> None:
    missing = sorted(name for name in REQUIRED_FIELDS.get(entity, ()) if name in values and values[name] is None)
    if missing:
        raise ValidationError(
            f"Missing required {entity} field(s): {', '.join(missing)}",
            {name: "required" for name in missing},
        )


def check_fields(entity: str, updates: t.Mapping[str, t.Any], allowed: t.AbstractSet[str]) -> dict[str, t.Any]:
    """Reject unknown fields and ``None`` for required ones; normalise datetimes to UTC."""
    unknown = sorted(set(updates) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown {entity} field(s): {', '.join(unknown)}",
            {name: "unknown field" for name in unknown},
        )
    check_required(entity, updates)
    cleaned = dict(updates)
    for name in DATETIME_FIELDS & cleaned.keys():
        if isinstance(cleaned[name], datetime):
            cleaned[name] = ensure_utc(cleaned[name])
    return cleaned


def check_status(status: str) -> str:
    if status not in SYLLABUS_STATUSES:
        raise ValidationError(f"Invalid syllabus status: {status!r}", {"status": "invalid"})
    return status


def check_status_transition(current: str, new: str) -> str:
    check_status(new)
    if current in TERMINAL_STATUSES and new != current:
        raise InvalidStatusTransition(f"Syllabus status cannot change from {current!r} to {new!r}")
    return new


def allowed_prior_statuses(new: str) -> tuple[str, ...]:
    """Statuses a syllabus may hold right before moving to ``new``."""
    check_status(new)
    return tuple(s for s in SYLLABUS_STATUSES if s not in TERMINAL_STATUSES or s == new)


def check_extraction(info: t.Mapping[str, t.Any],
                     events: t.Sequence[t.Mapping[str, t.Any]]) -> tuple[dict[str, t.Any], list[dict[str, t.Any]]]:
    """Validate an extraction result before it is recorded in one step."""
    cleaned_info = check_fields("syllabus", info, SYLLABUS_FIELDS - {"status", "calendar_integrated"})
    if "meeting_days" in cleaned_info:
        cleaned_info["meeting_days"] = list(cleaned_info["meeting_days"] or [])
    check_meeting_schedule(cleaned_info)
    cleaned_events = []
    for event in events:
        cleaned = check_fields("course event", event, COURSE_EVENT_FIELDS)
        check_required("course event", {name: cleaned.get(name) for name in ("title", "event_type")})
        cleaned["due_date"] = check_due_date(cleaned.get("due_date"))
        cleaned.setdefault("description", None)
        cleaned_events.append(cleaned)
    return cleaned_info, cleaned_events


def check_due_date(due_date: t.Any) -> datetime:
    if not isinstance(due_date, datetime):
        raise ValidationError("Course events require a due date", {"due_date": "required"})
    return ensure_utc(due_date)


def check_session_times(start_time: t.Any, end_time: t.Any) -> tuple[datetime, datetime]:
    if not isinstance(start_time, datetime) or not isinstance(end_time, datetime):
        raise ValidationError("Study sessions require start and end times")
    start, end = ensure_utc(start_time), ensure_utc(end_time)
    if end <= start:
        raise ValidationError("Study session must end after it starts", {"end_time": "must be after start_time"})
    return start, end


def check_integration_flag(current: bool, new: t.Any) -> bool:
    new = bool(new)
    if current and not new:
        raise ValidationError("Calendar integration cannot be reverted", {"calendar_integrated": "already set"})
    return new


def check_calendar_event_id(current: t.Optional[str], new: t.Optional[str]) -> t.Optional[str]:
    if current is not None and new != current:
        raise ValidationError("Study session is already synced", {"calendar_event_id": "already set"})
    return new


def check_meeting_schedule(updates: t.Mapping[str, t.Any]) -> None:
    days = updates.get("meeting_days")
    if days is not None:
        invalid = [d for d in days if d not in WEEKDAYS]
        if invalid:
            raise ValidationError(f"Invalid meeting day(s): {', '.join(map(str, invalid))}",
                                  {"meeting_days": "invalid"})
    for name in ("meeting_time_start", "meeting_time_end"):
        value = updates.get(name)
        if value is not None and not _TIME_OF_DAY_RE.match(value):
            raise ValidationError("Meeting time must be in format HH:MM (24-hour)", {name: "invalid"})


def check_syllabus_update(current: Syllabus, updates: t.Mapping[str, t.Any]) -> dict[str, t.Any]:
    cleaned = check_fields("syllabus", updates, SYLLABUS_FIELDS)
    if "status" in cleaned:
        check_status_transition(current.status, cleaned["status"])
    if "calendar_integrated" in cleaned:
        cleaned["calendar_integrated"] = check_integration_flag(current.calendar_integrated,
                                                                cleaned["calendar_integrated"])
    if "meeting_days" in cleaned:
        cleaned["meeting_days"] = list(cleaned["meeting_days"] or [])
    check_meeting_schedule(cleaned)
    return cleaned


def check_session_update(current: StudySession, updates: t.Mapping[str, t.Any]) -> dict[str, t.Any]:
    cleaned = check_fields("study session", updates, STUDY_SESSION_FIELDS)
    if "start_time" in cleaned or "end_time" in cleaned:
        check_session_times(cleaned.get("start_time", current.start_time), cleaned.get("end_time", current.end_time))
    if "calendar_event_id" in cleaned:
        check_calendar_event_id(current.calendar_event_id, cleaned["calendar_event_id"])
    return cleaned


class Storage(ABC):
    """
    CRUD over users, OAuth tokens, syllabi, course events, study plans and
    study sessions.

    Ordering: syllabi and study plans newest first; course events and study
    sessions in ascending chronological order. Ties break on id.
    Lookups of a missing id return ``None``.
    """

    # OAuth tokens
    @abstractmethod
    def create_oauth_token(self, user_id: int, provider: str, access_token: str,
                           refresh_token: t.Optional[str] = None, expires_at: t.Optional[datetime] = None,
                           scope: t.Optional[str] = None) -> OAuthToken: ...

    @abstractmethod
    def get_oauth_token(self, user_id: int, provider: str) -> t.Optional[OAuthToken]: ...

    @abstractmethod
    def get_oauth_tokens_by_user(self, user_id: int) -> list[OAuthToken]: ...

    @abstractmethod
    def update_oauth_token(self, token_id: int, **updates: t.Any) -> t.Optional[OAuthToken]: ...

    @abstractmethod
    def delete_oauth_tokens_by_user(self, user_id: int) -> int: ...

    # Users
    @abstractmethod
    def create_user(self, username: str, **fields: t.Any) -> User: ...

    @abstractmethod
    def get_user(self, user_id: int) -> t.Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> t.Optional[User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> t.Optional[User]: ...

    @abstractmethod
    def get_user_by_google_id(self, google_id: str) -> t.Optional[User]: ...

    @abstractmethod
    def update_user(self, user_id: int, **updates: t.Any) -> t.Optional[User]: ...

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        """
        Delete a user and everything they own, children first:
        sessions, plans, course events, syllabi, OAuth tokens, then the user.
        """

    # Syllabi
    @abstractmethod
    def create_syllabus(self, user_id: int, filename: str, **fields: t.Any) -> Syllabus: ...

    @abstractmethod
    def get_syllabus(self, syllabus_id: int) -> t.Optional[Syllabus]: ...

    @abstractmethod
    def get_syllabi_by_user(self, user_id: int) -> list[Syllabus]: ...

    @abstractmethod
    def update_syllabus_status(self, syllabus_id: int, status: str) -> t.Optional[Syllabus]: ...

    @abstractmethod
    def update_syllabus_info(self, syllabus_id: int, **info: t.Any) -> t.Optional[Syllabus]: ...

    @abstractmethod
    def record_extraction(self, syllabus_id: int, info: t.Mapping[str, t.Any],
                          events: t.Sequence[t.Mapping[str, t.Any]]) -> Syllabus:
        """
        Store an extraction result and mark the syllabus ``processed``, all at once.

        Only an ``uploaded`` syllabus can be recorded, so of two extractions
        racing on the same syllabus exactly one stores its events.

        :raises NotFoundError: If the syllabus does not exist.
        :raises InvalidStatusTransition: If the syllabus is no longer ``uploaded``.
        """

    # Course events
    @abstractmethod
    def create_course_event(self, syllabus_id: int, title: str, event_type: str, due_date: datetime,
                            description: t.Optional[str] = None) -> CourseEvent: ...

    @abstractmethod
    def get_course_events(self, syllabus_id: int) -> list[CourseEvent]: ...

    @abstractmethod
    def update_course_event(self, event_id: int, **updates: t.Any) -> t.Optional[CourseEvent]: ...

    # Study plans
    @abstractmethod
    def create_study_plan(self, syllabus_id: int, user_id: int, title: str, description: t.Optional[str] = None,
                          calendar_integrated: bool = False) -> StudyPlan: ...

    @abstractmethod
    def get_study_plan(self, plan_id: int) -> t.Optional[StudyPlan]: ...

    @abstractmethod
    def get_study_plans_by_syllabus(self, syllabus_id: int) -> list[StudyPlan]: ...

    @abstractmethod
    def get_study_plans_by_user(self, user_id: int) -> list[StudyPlan]: ...

    @abstractmethod
    def update_study_plan(self, plan_id: int, **updates: t.Any) -> t.Optional[StudyPlan]: ...

    def mark_study_plan_integrated(self, plan_id: int) -> t.Optional[StudyPlan]:
        return self.update_study_plan(plan_id, calendar_integrated=True)

    # Study sessions
    @abstractmethod
    def create_study_session(self, study_plan_id: int, title: str, start_time: datetime, end_time: datetime,
                             **fields: t.Any) -> StudySession: ...

    @abstractmethod
    def get_study_sessions(self, study_plan_id: int) -> list[StudySession]: ...

    @abstractmethod
    def update_study_session(self, session_id: int, **updates: t.Any) -> t.Optional[StudySession]: ...

    def close(self) -> None:
        """Release backend resources."""
