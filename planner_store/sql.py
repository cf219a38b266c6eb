# -*- coding: utf-8 -*-
"""
Relational storage on SQLAlchemy.

Works with any SQLAlchemy URL; SQLite is the default. Rows never leave this
module: every method returns the dataclasses from ``planner_store.models``.
Engine errors are re-raised as ``StorageError``.
"""
from __future__ import annotations

import logging
import typing as t
from contextlib import contextmanager
from dataclasses import fields as dataclass_fields
from datetime import datetime

from sqlalchemy import (JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, create_engine, delete, or_, select,
                        update)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from services.shared.errors import InvalidStatusTransition, NotFoundError, StorageError, ValidationError
from services.shared.utils import ensure_utc, utcnow
from .base import (COURSE_EVENT_FIELDS, OAUTH_TOKEN_FIELDS, STUDY_PLAN_FIELDS, STUDY_SESSION_FIELDS, SYLLABUS_FIELDS,
                   USER_FIELDS, Storage, allowed_prior_statuses, check_due_date, check_extraction, check_fields,
                   check_integration_flag, check_meeting_schedule, check_required, check_session_times,
                   check_session_update, check_status, check_status_transition, check_syllabus_update)
from .models import CourseEvent, OAuthToken, StudyPlan, StudySession, Syllabus, User

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    display_name: Mapped[t.Optional[str]] = mapped_column(String(255), nullable=True)
    initials: Mapped[t.Optional[str]] = mapped_column(String(8), nullable=True)
    email: Mapped[t.Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    google_id: Mapped[t.Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    profile_image_url: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    auth_provider: Mapped[t.Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    subscription_status: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    subscription_expiry: Mapped[t.Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class OAuthTokenRow(Base):
    __tablename__ = "oauth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[t.Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    scope: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SyllabusRow(Base):
    __tablename__ = "syllabi"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    course_code: Mapped[t.Optional[str]] = mapped_column(String(50), nullable=True)
    course_name: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    instructor: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    term: Mapped[t.Optional[str]] = mapped_column(String(100), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    text_content: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="uploaded")
    first_day_of_class: Mapped[t.Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_day_of_class: Mapped[t.Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    meeting_days: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    meeting_time_start: Mapped[t.Optional[str]] = mapped_column(String(5), nullable=True)
    meeting_time_end: Mapped[t.Optional[str]] = mapped_column(String(5), nullable=True)
    calendar_provider: Mapped[t.Optional[str]] = mapped_column(String(50), nullable=True)
    calendar_integrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CourseEventRow(Base):
    __tablename__ = "course_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    syllabus_id: Mapped[int] = mapped_column(ForeignKey("syllabi.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # assignment, exam, quiz, ...
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class StudyPlanRow(Base):
    __tablename__ = "study_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    syllabus_id: Mapped[int] = mapped_column(ForeignKey("syllabi.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    calendar_integrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class StudySessionRow(Base):
    __tablename__ = "study_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    study_plan_id: Mapped[int] = mapped_column(ForeignKey("study_plans.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    calendar_event_id: Mapped[t.Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[t.Optional[str]] = mapped_column(Text, nullable=True)
    event_type: Mapped[t.Optional[str]] = mapped_column(String(50), nullable=True)
    related_event_id: Mapped[t.Optional[int]] = mapped_column(Integer, nullable=True)


EntityT = t.TypeVar("EntityT")


def _to_entity(row: t.Any, cls: type[EntityT]) -> EntityT:
    values: dict[str, t.Any] = {}
    for f in dataclass_fields(cls):
        value = getattr(row, f.name)
        if isinstance(value, datetime):
            value = ensure_utc(value)
        elif isinstance(value, list):
            value = list(value)
        values[f.name] = value
    return cls(**values)


def _maybe(row: t.Any, cls: type[EntityT]) -> t.Optional[EntityT]:
    return _to_entity(row, cls) if row is not None else None


def create_sql_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


class SqlStorage(Storage):
    """SQLAlchemy implementation of :class:`Storage`."""

    def __init__(self, url: str = "sqlite:///studyplan.db", engine: t.Optional[Engine] = None,
                 echo: bool = False) -> None:
        self.engine = engine if engine is not None else create_sql_engine(url, echo=echo)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialise database: {e}") from e
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)

    @contextmanager
    def _transaction(self) -> t.Iterator[Session]:
        try:
            with self._session_factory.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Database error: %s", e)
            raise StorageError(str(e)) from e

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _require(session: Session, row_cls: type, row_id: int, resource: str) -> None:
        if session.get(row_cls, row_id) is None:
            raise NotFoundError(resource)

    # OAuth tokens

    def create_oauth_token(self, user_id: int, provider: str, access_token: str,
                           refresh_token: t.Optional[str] = None, expires_at: t.Optional[datetime] = None,
                           scope: t.Optional[str] = None) -> OAuthToken:
        fields = check_fields(
            "oauth token",
            {"provider": provider, "access_token": access_token, "expires_at": expires_at},
            OAUTH_TOKEN_FIELDS,
        )
        with self._transaction() as session:
            self._require(session, UserRow, user_id, "User")
            now = utcnow()
            row = OAuthTokenRow(
                user_id=user_id,
                provider=provider,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=fields["expires_at"],
                scope=scope,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return _to_entity(row, OAuthToken)

    def get_oauth_token(self, user_id: int, provider: str) -> t.Optional[OAuthToken]:
        with self._transaction() as session:
            row = session.scalars(
                select(OAuthTokenRow)
                .where(OAuthTokenRow.user_id == user_id, OAuthTokenRow.provider == provider)
                .order_by(OAuthTokenRow.id)
                .limit(1)
            ).first()
            return _maybe(row, OAuthToken)

    def get_oauth_tokens_by_user(self, user_id: int) -> list[OAuthToken]:
        with self._transaction() as session:
            rows = session.scalars(
                select(OAuthTokenRow).where(OAuthTokenRow.user_id == user_id).order_by(OAuthTokenRow.id)
            ).all()
            return [_to_entity(row, OAuthToken) for row in rows]

    def update_oauth_token(self, token_id: int, **updates: t.Any) -> t.Optional[OAuthToken]:
        cleaned = check_fields("oauth token", updates, OAUTH_TOKEN_FIELDS)
        with self._transaction() as session:
            row = session.get(OAuthTokenRow, token_id)
            if row is None:
                return None
            for name, value in cleaned.items():
                setattr(row, name, value)
            row.updated_at = utcnow()
            session.flush()
            return _to_entity(row, OAuthToken)

    def delete_oauth_tokens_by_user(self, user_id: int) -> int:
        with self._transaction() as session:
            result = session.execute(delete(OAuthTokenRow).where(OAuthTokenRow.user_id == user_id))
            return result.rowcount or 0

    # Users

    @staticmethod
    def _check_unique_user(session: Session, fields: t.Mapping[str, t.Any], user_id: t.Optional[int] = None) -> None:
        for name in ("username", "email", "google_id"):
            value = fields.get(name)
            if value is None:
                continue
            existing = session.scalars(
                select(UserRow).where(getattr(UserRow, name) == value).limit(1)
            ).first()
            if existing is not None and existing.id != user_id:
                raise ValidationError(f"A user with this {name} already exists", {name: "already taken"})

    def create_user(self, username: str, **fields: t.Any) -> User:
        check_required("user", {"username": username})
        cleaned = check_fields("user", fields, USER_FIELDS - {"username"})
        cleaned.setdefault("role", "user")
        cleaned.setdefault("subscription_status", "free")
        with self._transaction() as session:
            self._check_unique_user(session, {"username": username, **cleaned})
            row = UserRow(username=username, created_at=utcnow(), **cleaned)
            session.add(row)
            session.flush()
            return _to_entity(row, User)

    def get_user(self, user_id: int) -> t.Optional[User]:
        with self._transaction() as session:
            return _maybe(session.get(UserRow, user_id), User)

    def _get_user_by(self, name: str, value: str) -> t.Optional[User]:
        with self._transaction() as session:
            row = session.scalars(
                select(UserRow).where(getattr(UserRow, name) == value).order_by(UserRow.id).limit(1)
            ).first()
            return _maybe(row, User)

    def get_user_by_username(self, username: str) -> t.Optional[User]:
        return self._get_user_by("username", username)

    def get_user_by_email(self, email: str) -> t.Optional[User]:
        return self._get_user_by("email", email)

    def get_user_by_google_id(self, google_id: str) -> t.Optional[User]:
        return self._get_user_by("google_id", google_id)

    def update_user(self, user_id: int, **updates: t.Any) -> t.Optional[User]:
        cleaned = check_fields("user", updates, USER_FIELDS)
        with self._transaction() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                return None
            self._check_unique_user(session, cleaned, user_id=user_id)
            for name, value in cleaned.items():
                setattr(row, name, value)
            session.flush()
            return _to_entity(row, User)

    def delete_user(self, user_id: int) -> bool:
        with self._transaction() as session:
            if session.get(UserRow, user_id) is None:
                return False
            syllabus_ids = list(session.scalars(select(SyllabusRow.id).where(SyllabusRow.user_id == user_id)))
            plan_ids = list(session.scalars(
                select(StudyPlanRow.id).where(
                    or_(StudyPlanRow.user_id == user_id, StudyPlanRow.syllabus_id.in_(syllabus_ids))
                )
            ))
            # Children before parents.
            session.execute(delete(StudySessionRow).where(StudySessionRow.study_plan_id.in_(plan_ids)))
            session.execute(delete(StudyPlanRow).where(StudyPlanRow.id.in_(plan_ids)))
            session.execute(delete(CourseEventRow).where(CourseEventRow.syllabus_id.in_(syllabus_ids)))
            session.execute(delete(SyllabusRow).where(SyllabusRow.id.in_(syllabus_ids)))
            session.execute(delete(OAuthTokenRow).where(OAuthTokenRow.user_id == user_id))
            session.execute(delete(UserRow).where(UserRow.id == user_id))
            return True

    # Syllabi

    def create_syllabus(self, user_id: int, filename: str, **fields: t.Any) -> Syllabus:
        check_required("syllabus", {"filename": filename})
        cleaned = check_fields("syllabus", fields, SYLLABUS_FIELDS - {"filename"})
        check_status(cleaned.setdefault("status", "uploaded"))
        cleaned["calendar_integrated"] = bool(cleaned.get("calendar_integrated", False))
        cleaned["meeting_days"] = list(cleaned.get("meeting_days") or [])
        check_meeting_schedule(cleaned)
        with self._transaction() as session:
            self._require(session, UserRow, user_id, "User")
            row = SyllabusRow(user_id=user_id, filename=filename, uploaded_at=utcnow(), **cleaned)
            session.add(row)
            session.flush()
            return _to_entity(row, Syllabus)

    def get_syllabus(self, syllabus_id: int) -> t.Optional[Syllabus]:
        with self._transaction() as session:
            return _maybe(session.get(SyllabusRow, syllabus_id), Syllabus)

    def get_syllabi_by_user(self, user_id: int) -> list[Syllabus]:
        with self._transaction() as session:
            rows = session.scalars(
                select(SyllabusRow)
                .where(SyllabusRow.user_id == user_id)
                .order_by(SyllabusRow.uploaded_at.desc(), SyllabusRow.id.desc())
            ).all()
            return [_to_entity(row, Syllabus) for row in rows]

    def update_syllabus_status(self, syllabus_id: int, status: str) -> t.Optional[Syllabus]:
        prior = allowed_prior_statuses(status)
        with self._transaction() as session:
            # The WHERE clause makes check and write one statement.
            result = session.execute(
                update(SyllabusRow)
                .where(SyllabusRow.id == syllabus_id, SyllabusRow.status.in_(prior))
                .values(status=status)
            )
            row = session.get(SyllabusRow, syllabus_id, populate_existing=True)
            if row is None:
                return None
            if not result.rowcount:
                check_status_transition(row.status, status)
            return _to_entity(row, Syllabus)

    def update_syllabus_info(self, syllabus_id: int, **info: t.Any) -> t.Optional[Syllabus]:
        with self._transaction() as session:
            row = session.get(SyllabusRow, syllabus_id)
            if row is None:
                return None
            cleaned = check_syllabus_update(_to_entity(row, Syllabus), info)
            for name, value in cleaned.items():
                setattr(row, name, value)
            session.flush()
            return _to_entity(row, Syllabus)

    def record_extraction(self, syllabus_id: int, info: t.Mapping[str, t.Any],
                          events: t.Sequence[t.Mapping[str, t.Any]]) -> Syllabus:
        cleaned_info, cleaned_events = check_extraction(info, events)
        with self._transaction() as session:
            result = session.execute(
                update(SyllabusRow)
                .where(SyllabusRow.id == syllabus_id, SyllabusRow.status == "uploaded")
                .values(status="processed", **cleaned_info)
            )
            if not result.rowcount:
                self._require(session, SyllabusRow, syllabus_id, "Syllabus")
                raise InvalidStatusTransition(f"Syllabus {syllabus_id} has already been processed")
            now = utcnow()
            session.add_all([CourseEventRow(syllabus_id=syllabus_id, created_at=now, **event)
                             for event in cleaned_events])
            session.flush()
            return _to_entity(session.get(SyllabusRow, syllabus_id, populate_existing=True), Syllabus)

    # Course events

    def create_course_event(self, syllabus_id: int, title: str, event_type: str, due_date: datetime,
                            description: t.Optional[str] = None) -> CourseEvent:
        check_required("course event", {"title": title, "event_type": event_type})
        due = check_due_date(due_date)
        with self._transaction() as session:
            self._require(session, SyllabusRow, syllabus_id, "Syllabus")
            row = CourseEventRow(
                syllabus_id=syllabus_id,
                title=title,
                event_type=event_type,
                due_date=due,
                description=description,
                created_at=utcnow(),
            )
            session.add(row)
            session.flush()
            return _to_entity(row, CourseEvent)

    def get_course_events(self, syllabus_id: int) -> list[CourseEvent]:
        with self._transaction() as session:
            rows = session.scalars(
                select(CourseEventRow)
                .where(CourseEventRow.syllabus_id == syllabus_id)
                .order_by(CourseEventRow.due_date, CourseEventRow.id)
            ).all()
            return [_to_entity(row, CourseEvent) for row in rows]

    def update_course_event(self, event_id: int, **updates: t.Any) -> t.Optional[CourseEvent]:
        cleaned = check_fields("course event", updates, COURSE_EVENT_FIELDS)
        if "due_date" in cleaned:
            cleaned["due_date"] = check_due_date(cleaned["due_date"])
        with self._transaction() as session:
            row = session.get(CourseEventRow, event_id)
            if row is None:
                return None
            for name, value in cleaned.items():
                setattr(row, name, value)
            session.flush()
            return _to_entity(row, CourseEvent)

    # Study plans

    def create_study_plan(self, syllabus_id: int, user_id: int, title: str, description: t.Optional[str] = None,
                          calendar_integrated: bool = False) -> StudyPlan:
        check_required("study plan", {"title": title})
        with self._transaction() as session:
            self._require(session, UserRow, user_id, "User")
            self._require(session, SyllabusRow, syllabus_id, "Syllabus")
            row = StudyPlanRow(
                syllabus_id=syllabus_id,
                user_id=user_id,
                title=title,
                description=description,
                calendar_integrated=bool(calendar_integrated),
                created_at=utcnow(),
            )
            session.add(row)
            session.flush()
            return _to_entity(row, StudyPlan)

    def get_study_plan(self, plan_id: int) -> t.Optional[StudyPlan]:
        with self._transaction() as session:
            return _maybe(session.get(StudyPlanRow, plan_id), StudyPlan)

    def _plans_newest_first(self, condition: t.Any) -> list[StudyPlan]:
        with self._transaction() as session:
            rows = session.scalars(
                select(StudyPlanRow)
                .where(condition)
                .order_by(StudyPlanRow.created_at.desc(), StudyPlanRow.id.desc())
            ).all()
            return [_to_entity(row, StudyPlan) for row in rows]

    def get_study_plans_by_syllabus(self, syllabus_id: int) -> list[StudyPlan]:
        return self._plans_newest_first(StudyPlanRow.syllabus_id == syllabus_id)

    def get_study_plans_by_user(self, user_id: int) -> list[StudyPlan]:
        return self._plans_newest_first(StudyPlanRow.user_id == user_id)

    def update_study_plan(self, plan_id: int, **updates: t.Any) -> t.Optional[StudyPlan]:
        cleaned = check_fields("study plan", updates, STUDY_PLAN_FIELDS)
        with self._transaction() as session:
            row = session.get(StudyPlanRow, plan_id)
            if row is None:
                return None
            if "calendar_integrated" in cleaned:
                cleaned["calendar_integrated"] = check_integration_flag(row.calendar_integrated,
                                                                        cleaned["calendar_integrated"])
            for name, value in cleaned.items():
                setattr(row, name, value)
            session.flush()
            return _to_entity(row, StudyPlan)

    # Study sessions

    def create_study_session(self, study_plan_id: int, title: str, start_time: datetime, end_time: datetime,
                             **fields: t.Any) -> StudySession:
        check_required("study session", {"title": title})
        cleaned = check_fields("study session", fields, STUDY_SESSION_FIELDS - {"title", "start_time", "end_time"})
        start, end = check_session_times(start_time, end_time)
        with self._transaction() as session:
            self._require(session, StudyPlanRow, study_plan_id, "Study plan")
            row = StudySessionRow(study_plan_id=study_plan_id, title=title, start_time=start, end_time=end, **cleaned)
            session.add(row)
            session.flush()
            return _to_entity(row, StudySession)

    def get_study_sessions(self, study_plan_id: int) -> list[StudySession]:
        with self._transaction() as session:
            rows = session.scalars(
                select(StudySessionRow)
                .where(StudySessionRow.study_plan_id == study_plan_id)
                .order_by(StudySessionRow.start_time, StudySessionRow.id)
            ).all()
            return [_to_entity(row, StudySession) for row in rows]

    def update_study_session(self, session_id: int, **updates: t.Any) -> t.Optional[StudySession]:
        with self._transaction() as session:
            row = session.get(StudySessionRow, session_id)
            if row is None:
                return None
            cleaned = check_session_update(_to_entity(row, StudySession), updates)
            for name, value in cleaned.items():
                setattr(row, name, value)
            session.flush()
            return _to_entity(row, StudySession)
