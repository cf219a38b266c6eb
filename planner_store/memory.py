# -*- coding: utf-8 -*-
"""
Dict-backed storage.

Single process only and nothing survives a restart. Status changes go
through one lock so concurrent extractions of a syllabus cannot both land.
Use it for development and tests; production runs on ``SqlStorage``.
"""
from __future__ import annotations

import itertools
import threading
import typing as t
from copy import deepcopy
from dataclasses import replace
from datetime import datetime

from services.shared.errors import InvalidStatusTransition, NotFoundError, ValidationError
from services.shared.utils import utcnow
from .base import (OAUTH_TOKEN_FIELDS, STUDY_SESSION_FIELDS, SYLLABUS_FIELDS, USER_FIELDS, COURSE_EVENT_FIELDS,
                   STUDY_PLAN_FIELDS, Storage, check_due_date, check_extraction, check_fields,
                   check_integration_flag, check_meeting_schedule, check_required, check_session_times,
                   check_session_update, check_status, check_status_transition, check_syllabus_update)
from .models import CourseEvent, OAuthToken, StudyPlan, StudySession, Syllabus, User


Entity = t.TypeVar("Entity")


class MemoryStorage(Storage):
    """In-memory implementation of :class:`Storage`."""

    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._oauth_tokens: dict[int, OAuthToken] = {}
        self._syllabi: dict[int, Syllabus] = {}
        self._course_events: dict[int, CourseEvent] = {}
        self._study_plans: dict[int, StudyPlan] = {}
        self._study_sessions: dict[int, StudySession] = {}

        self._user_ids = itertools.count(1)
        self._oauth_token_ids = itertools.count(1)
        self._syllabus_ids = itertools.count(1)
        self._course_event_ids = itertools.count(1)
        self._study_plan_ids = itertools.count(1)
        self._study_session_ids = itertools.count(1)

        self._lock = threading.RLock()

    @staticmethod
    def _copy(entity: t.Optional[Entity]) -> t.Optional[Entity]:
        # Callers get copies so mutating a result never changes stored state.
        return deepcopy(entity) if entity is not None else None

    def _require(self, table: dict[int, t.Any], entity_id: int, resource: str) -> None:
        if entity_id not in table:
            raise NotFoundError(resource)

    # OAuth tokens

    def create_oauth_token(self, user_id: int, provider: str, access_token: str,
                           refresh_token: t.Optional[str] = None, expires_at: t.Optional[datetime] = None,
                           scope: t.Optional[str] = None) -> OAuthToken:
        self._require(self._users, user_id, "User")
        fields = check_fields(
            "oauth token",
            {"provider": provider, "access_token": access_token, "expires_at": expires_at},
            OAUTH_TOKEN_FIELDS,
        )
        now = utcnow()
        token = OAuthToken(
            id=next(self._oauth_token_ids),
            user_id=user_id,
            provider=provider,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=fields["expires_at"],
            scope=scope,
            created_at=now,
            updated_at=now,
        )
        self._oauth_tokens[token.id] = token
        return self._copy(token)

    def get_oauth_token(self, user_id: int, provider: str) -> t.Optional[OAuthToken]:
        for token in sorted(self._oauth_tokens.values(), key=lambda tok: tok.id):
            if token.user_id == user_id and token.provider == provider:
                return self._copy(token)
        return None

    def get_oauth_tokens_by_user(self, user_id: int) -> list[OAuthToken]:
        tokens = [tok for tok in self._oauth_tokens.values() if tok.user_id == user_id]
        return [self._copy(tok) for tok in sorted(tokens, key=lambda tok: tok.id)]

    def update_oauth_token(self, token_id: int, **updates: t.Any) -> t.Optional[OAuthToken]:
        token = self._oauth_tokens.get(token_id)
        if token is None:
            return None
        cleaned = check_fields("oauth token", updates, OAUTH_TOKEN_FIELDS)
        updated = replace(token, **cleaned, updated_at=utcnow())
        self._oauth_tokens[token_id] = updated
        return self._copy(updated)

    def delete_oauth_tokens_by_user(self, user_id: int) -> int:
        doomed = [tid for tid, tok in self._oauth_tokens.items() if tok.user_id == user_id]
        for tid in doomed:
            del self._oauth_tokens[tid]
        return len(doomed)

    # Users

    def _find_user(self, **criteria: t.Any) -> t.Optional[User]:
        (name, value), = criteria.items()
        for user in sorted(self._users.values(), key=lambda u: u.id):
            if getattr(user, name) == value:
                return user
        return None

    def _check_unique_user(self, fields: t.Mapping[str, t.Any], user_id: t.Optional[int] = None) -> None:
        for name in ("username", "email", "google_id"):
            value = fields.get(name)
            if value is None:
                continue
            existing = self._find_user(**{name: value})
            if existing is not None and existing.id != user_id:
                raise ValidationError(f"A user with this {name} already exists", {name: "already taken"})

    def create_user(self, username: str, **fields: t.Any) -> User:
        check_required("user", {"username": username})
        cleaned = check_fields("user", fields, USER_FIELDS - {"username"})
        self._check_unique_user({"username": username, **cleaned})
        cleaned.setdefault("role", "user")
        cleaned.setdefault("subscription_status", "free")
        user = User(id=next(self._user_ids), username=username, created_at=utcnow(), **cleaned)
        self._users[user.id] = user
        return self._copy(user)

    def get_user(self, user_id: int) -> t.Optional[User]:
        return self._copy(self._users.get(user_id))

    def get_user_by_username(self, username: str) -> t.Optional[User]:
        return self._copy(self._find_user(username=username))

    def get_user_by_email(self, email: str) -> t.Optional[User]:
        return self._copy(self._find_user(email=email))

    def get_user_by_google_id(self, google_id: str) -> t.Optional[User]:
        return self._copy(self._find_user(google_id=google_id))

    def update_user(self, user_id: int, **updates: t.Any) -> t.Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        cleaned = check_fields("user", updates, USER_FIELDS)
        self._check_unique_user(cleaned, user_id=user_id)
        updated = replace(user, **cleaned)
        self._users[user_id] = updated
        return self._copy(updated)

    def delete_user(self, user_id: int) -> bool:
        if user_id not in self._users:
            return False
        syllabus_ids = {s.id for s in self._syllabi.values() if s.user_id == user_id}
        plan_ids = {
            p.id for p in self._study_plans.values()
            if p.user_id == user_id or p.syllabus_id in syllabus_ids
        }

        for sid in [s.id for s in self._study_sessions.values() if s.study_plan_id in plan_ids]:
            del self._study_sessions[sid]
        for pid in plan_ids:
            del self._study_plans[pid]
        for eid in [e.id for e in self._course_events.values() if e.syllabus_id in syllabus_ids]:
            del self._course_events[eid]
        for sid in syllabus_ids:
            del self._syllabi[sid]
        self.delete_oauth_tokens_by_user(user_id)
        del self._users[user_id]
        return True

    # Syllabi

    def create_syllabus(self, user_id: int, filename: str, **fields: t.Any) -> Syllabus:
        self._require(self._users, user_id, "User")
        check_required("syllabus", {"filename": filename})
        cleaned = check_fields("syllabus", fields, SYLLABUS_FIELDS - {"filename"})
        check_status(cleaned.setdefault("status", "uploaded"))
        cleaned["calendar_integrated"] = bool(cleaned.get("calendar_integrated", False))
        cleaned["meeting_days"] = list(cleaned.get("meeting_days") or [])
        check_meeting_schedule(cleaned)
        syllabus = Syllabus(
            id=next(self._syllabus_ids),
            user_id=user_id,
            filename=filename,
            uploaded_at=utcnow(),
            **cleaned,
        )
        self._syllabi[syllabus.id] = syllabus
        return self._copy(syllabus)

    def get_syllabus(self, syllabus_id: int) -> t.Optional[Syllabus]:
        return self._copy(self._syllabi.get(syllabus_id))

    def get_syllabi_by_user(self, user_id: int) -> list[Syllabus]:
        syllabi = [s for s in self._syllabi.values() if s.user_id == user_id]
        syllabi.sort(key=lambda s: (s.uploaded_at, s.id), reverse=True)
        return [self._copy(s) for s in syllabi]

    def update_syllabus_status(self, syllabus_id: int, status: str) -> t.Optional[Syllabus]:
        with self._lock:
            syllabus = self._syllabi.get(syllabus_id)
            if syllabus is None:
                return None
            updated = replace(syllabus, status=check_status_transition(syllabus.status, status))
            self._syllabi[syllabus_id] = updated
            return self._copy(updated)

    def update_syllabus_info(self, syllabus_id: int, **info: t.Any) -> t.Optional[Syllabus]:
        with self._lock:
            syllabus = self._syllabi.get(syllabus_id)
            if syllabus is None:
                return None
            updated = replace(syllabus, **check_syllabus_update(syllabus, info))
            self._syllabi[syllabus_id] = updated
            return self._copy(updated)

    def record_extraction(self, syllabus_id: int, info: t.Mapping[str, t.Any],
                          events: t.Sequence[t.Mapping[str, t.Any]]) -> Syllabus:
        cleaned_info, cleaned_events = check_extraction(info, events)
        with self._lock:
            syllabus = self._syllabi.get(syllabus_id)
            if syllabus is None:
                raise NotFoundError("Syllabus")
            if syllabus.status != "uploaded":
                raise InvalidStatusTransition(f"Syllabus {syllabus_id} has already been processed")
            for event in cleaned_events:
                self._add_course_event(syllabus_id, **event)
            updated = replace(syllabus, **cleaned_info, status="processed")
            self._syllabi[syllabus_id] = updated
            return self._copy(updated)

    # Course events

    def _add_course_event(self, syllabus_id: int, title: str, event_type: str, due_date: datetime,
                          description: t.Optional[str]) -> CourseEvent:
        event = CourseEvent(
            id=next(self._course_event_ids),
            syllabus_id=syllabus_id,
            title=title,
            event_type=event_type,
            due_date=due_date,
            description=description,
            created_at=utcnow(),
        )
        self._course_events[event.id] = event
        return event

    def create_course_event(self, syllabus_id: int, title: str, event_type: str, due_date: datetime,
                            description: t.Optional[str] = None) -> CourseEvent:
        self._require(self._syllabi, syllabus_id, "Syllabus")
        check_required("course event", {"title": title, "event_type": event_type})
        event = self._add_course_event(syllabus_id, title, event_type, check_due_date(due_date), description)
        return self._copy(event)

    def get_course_events(self, syllabus_id: int) -> list[CourseEvent]:
        events = [e for e in self._course_events.values() if e.syllabus_id == syllabus_id]
        events.sort(key=lambda e: (e.due_date, e.id))
        return [self._copy(e) for e in events]

    def update_course_event(self, event_id: int, **updates: t.Any) -> t.Optional[CourseEvent]:
        event = self._course_events.get(event_id)
        if event is None:
            return None
        cleaned = check_fields("course event", updates, COURSE_EVENT_FIELDS)
        if "due_date" in cleaned:
            cleaned["due_date"] = check_due_date(cleaned["due_date"])
        updated = replace(event, **cleaned)
        self._course_events[event_id] = updated
        return self._copy(updated)

    # Study plans

    def create_study_plan(self, syllabus_id: int, user_id: int, title: str, description: t.Optional[str] = None,
                          calendar_integrated: bool = False) -> StudyPlan:
        self._require(self._users, user_id, "User")
        self._require(self._syllabi, syllabus_id, "Syllabus")
        check_required("study plan", {"title": title})
        plan = StudyPlan(
            id=next(self._study_plan_ids),
            syllabus_id=syllabus_id,
            user_id=user_id,
            title=title,
            description=description,
            calendar_integrated=bool(calendar_integrated),
            created_at=utcnow(),
        )
        self._study_plans[plan.id] = plan
        return self._copy(plan)

    def get_study_plan(self, plan_id: int) -> t.Optional[StudyPlan]:
        return self._copy(self._study_plans.get(plan_id))

    def _plans_newest_first(self, predicate: t.Callable[[StudyPlan], bool]) -> list[StudyPlan]:
        plans = [p for p in self._study_plans.values() if predicate(p)]
        plans.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [self._copy(p) for p in plans]

    def get_study_plans_by_syllabus(self, syllabus_id: int) -> list[StudyPlan]:
        return self._plans_newest_first(lambda p: p.syllabus_id == syllabus_id)

    def get_study_plans_by_user(self, user_id: int) -> list[StudyPlan]:
        return self._plans_newest_first(lambda p: p.user_id == user_id)

    def update_study_plan(self, plan_id: int, **updates: t.Any) -> t.Optional[StudyPlan]:
        plan = self._study_plans.get(plan_id)
        if plan is None:
            return None
        cleaned = check_fields("study plan", updates, STUDY_PLAN_FIELDS)
        if "calendar_integrated" in cleaned:
            cleaned["calendar_integrated"] = check_integration_flag(plan.calendar_integrated,
                                                                    cleaned["calendar_integrated"])
        updated = replace(plan, **cleaned)
        self._study_plans[plan_id] = updated
        return self._copy(updated)

    # Study sessions

    def create_study_session(self, study_plan_id: int, title: str, start_time: datetime, end_time: datetime,
                             **fields: t.Any) -> StudySession:
        self._require(self._study_plans, study_plan_id, "Study plan")
        check_required("study session", {"title": title})
        cleaned = check_fields("study session", fields, STUDY_SESSION_FIELDS - {"title", "start_time", "end_time"})
        start, end = check_session_times(start_time, end_time)
        session = StudySession(
            id=next(self._study_session_ids),
            study_plan_id=study_plan_id,
            title=title,
            start_time=start,
            end_time=end,
            **cleaned,
        )
        self._study_sessions[session.id] = session
        return self._copy(session)

    def get_study_sessions(self, study_plan_id: int) -> list[StudySession]:
        sessions = [s for s in self._study_sessions.values() if s.study_plan_id == study_plan_id]
        sessions.sort(key=lambda s: (s.start_time, s.id))
        return [self._copy(s) for s in sessions]

    def update_study_session(self, session_id: int, **updates: t.Any) -> t.Optional[StudySession]:
        session = self._study_sessions.get(session_id)
        if session is None:
            return None
        updated = replace(session, **check_session_update(session, updates))
        self._study_sessions[session_id] = updated
        return self._copy(updated)
