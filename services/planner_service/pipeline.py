"""
The extraction → planning → export pipeline, independent of HTTP.

Everything here takes an explicit :class:`AppContext`; the FastAPI app, the
MCP gateway and the tests each build their own.
"""
from __future__ import annotations

import logging
import typing as t
from dataclasses import dataclass, field
from datetime import datetime

from academic_planner.batch import persist_sessions
from academic_planner.models import BatchFailure
from academic_planner.scheduler import generate_study_sessions
from planner_store import create_storage
from planner_store.base import Storage
from planner_store.models import StudyPlan, StudySession, Syllabus
from productivity_server.ics import encode_ics
from productivity_server.mapping import build_calendar_events
from productivity_server.models import CalendarEvent
from productivity_server.providers import build_provider_payloads
from services.shared.config import Settings
from services.shared.errors import InvalidStatusTransition, NotFoundError, StorageError, ValidationError
from services.shared.utils import slugify
from syllabus_server.extractor import SyllabusExtractor
from syllabus_server.models import ExtractionResult
from syllabus_server.oracle import ExtractionOracle, OpenAIOracle

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Long-lived collaborators, built once per process."""
    settings: Settings
    storage: Storage
    extractor: SyllabusExtractor

    def close(self) -> None:
        self.storage.close()


def build_context(
    settings: Settings,
    oracle: t.Optional[ExtractionOracle] = None,
    storage: t.Optional[Storage] = None,
) -> AppContext:
    if oracle is None:
        oracle = OpenAIOracle.from_settings(settings)
    if storage is None:
        storage = create_storage(settings)
    extractor = SyllabusExtractor(oracle, fallback_threshold=settings.pdf_fallback_threshold)
    return AppContext(settings=settings, storage=storage, extractor=extractor)


# Ownership lookups

def get_owned_syllabus(storage: Storage, syllabus_id: int, user_id: int) -> Syllabus:
    syllabus = storage.get_syllabus(syllabus_id)
    if syllabus is None or syllabus.user_id != user_id:
        raise NotFoundError("Syllabus")
    return syllabus


def get_owned_study_plan(storage: Storage, plan_id: int, user_id: int) -> StudyPlan:
    plan = storage.get_study_plan(plan_id)
    if plan is None or plan.user_id != user_id:
        raise NotFoundError("Study plan")
    return plan


# Extraction

def _mark_failed(storage: Storage, syllabus_id: int) -> None:
    try:
        storage.update_syllabus_status(syllabus_id, "error")
    except StorageError:
        logger.exception("Could not mark syllabus %s as failed", syllabus_id)


def process_syllabus(
    context: AppContext,
    syllabus_id: int,
    *,
    text: t.Optional[str] = None,
    pdf_bytes: t.Optional[bytes] = None,
) -> ExtractionResult:
    """Extract a syllabus and store what was found.

    The syllabus ends up ``processed`` when anything was extracted and
    ``error`` when nothing was, or when storing the result failed. The
    metadata, the events and the status are recorded in one storage call,
    so when two extractions of the same syllabus overlap only the first to
    finish is kept.

    :raises NotFoundError: If the syllabus does not exist.
    :raises InvalidStatusTransition: If the syllabus was already processed,
        including by an extraction that finished first.
    :raises StorageError: If the extracted data could not be stored.
    """
    storage = context.storage
    syllabus = storage.get_syllabus(syllabus_id)
    if syllabus is None:
        raise NotFoundError("Syllabus")
    if syllabus.status != "uploaded":
        raise InvalidStatusTransition(f"Syllabus {syllabus_id} has already been processed")

    if pdf_bytes is not None:
        result = context.extractor.extract_from_pdf(pdf_bytes, syllabus_id=syllabus_id, filename=syllabus.filename)
    else:
        result = context.extractor.extract_from_text(text or "", syllabus_id=syllabus_id)

    if result.is_empty:
        logger.warning("No course information found in syllabus %s", syllabus_id)
        _mark_failed(storage, syllabus_id)
        return result

    info = {k: v for k, v in result.metadata().items() if v is not None}
    if text is not None:
        info["text_content"] = text
    events = [
        {"title": e.title, "event_type": e.event_type, "due_date": e.due_date, "description": e.description}
        for e in result.events
    ]
    try:
        storage.record_extraction(syllabus_id, info, events)
    except StorageError:
        logger.exception("Failed to store extraction result for syllabus %s", syllabus_id)
        _mark_failed(storage, syllabus_id)
        raise

    logger.info("Syllabus %s processed: %d event(s)", syllabus_id, len(result.events))
    return result


def run_background_extraction(context: AppContext, syllabus_id: int, pdf_bytes: bytes) -> None:
    """Background-task entry point; failures end up in the syllabus status and the log."""
    try:
        process_syllabus(context, syllabus_id, pdf_bytes=pdf_bytes)
    except (NotFoundError, StorageError, ValidationError):
        logger.exception("Background extraction failed for syllabus %s", syllabus_id)


# Planning

@dataclass
class PlanCreation:
    plan: StudyPlan
    sessions: list[StudySession] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)


def create_study_plan(
    context: AppContext,
    user_id: int,
    syllabus_id: int,
    title: str,
    start: datetime,
    end: datetime,
    sessions_per_week: int = 3,
    hours_per_session: float = 2,
    description: t.Optional[str] = None,
) -> PlanCreation:
    """Create a plan for a syllabus and fill it with generated sessions.

    Input is validated before anything is written. Sessions are stored one
    at a time; the returned ``sessions`` are re-read from storage.
    """
    storage = context.storage
    syllabus = get_owned_syllabus(storage, syllabus_id, user_id)
    events = storage.get_course_events(syllabus_id)
    drafts = generate_study_sessions(
        start,
        end,
        sessions_per_week,
        hours_per_session,
        events=events,
        course_code=syllabus.course_code,
    )

    plan = storage.create_study_plan(syllabus_id, user_id, title, description=description)
    batch = persist_sessions(storage, plan.id, drafts)
    sessions = storage.get_study_sessions(plan.id)
    return PlanCreation(plan=plan, sessions=sessions, failures=batch.failures)


# Export

def plan_calendar_events(context: AppContext, plan: StudyPlan) -> list[CalendarEvent]:
    """Course events of the plan's syllabus, then its study sessions."""
    storage = context.storage
    syllabus = storage.get_syllabus(plan.syllabus_id)
    course_code = syllabus.course_code if syllabus is not None else None
    return build_calendar_events(
        storage.get_course_events(plan.syllabus_id),
        storage.get_study_sessions(plan.id),
        course_code=course_code,
    )


def export_study_plan_ics(context: AppContext, plan_id: int, user_id: int) -> tuple[str, str]:
    """Encode a plan as ICS and mark it integrated.

    :return: ``(filename, document)``.
    :raises EmptyCalendarError: If the plan has nothing to export.
    """
    plan = get_owned_study_plan(context.storage, plan_id, user_id)
    document = encode_ics(plan_calendar_events(context, plan))
    context.storage.mark_study_plan_integrated(plan.id)
    return f"{slugify(plan.title)}.ics", document


def study_plan_payloads(
    context: AppContext,
    plan_id: int,
    user_id: int,
    provider: str,
    timezone: t.Optional[str] = None,
) -> list[dict[str, t.Any]]:
    plan = get_owned_study_plan(context.storage, plan_id, user_id)
    return build_provider_payloads(
        plan_calendar_events(context, plan),
        provider,
        timezone or context.settings.calendar_timezone,
    )


def confirm_calendar_integration(
    context: AppContext,
    plan_id: int,
    user_id: int,
    calendar_event_ids: t.Optional[t.Mapping[int, str]] = None,
    provider: t.Optional[str] = None,
) -> StudyPlan:
    """Record a successful external sync: session event ids, then the plan flag."""
    storage = context.storage
    plan = get_owned_study_plan(storage, plan_id, user_id)
    calendar_event_ids = dict(calendar_event_ids or {})
    owned = {s.id for s in storage.get_study_sessions(plan.id)}
    if set(calendar_event_ids) - owned:
        raise NotFoundError("Study session")
    for session_id, event_id in calendar_event_ids.items():
        storage.update_study_session(session_id, calendar_event_id=event_id)
    if provider:
        storage.update_syllabus_info(plan.syllabus_id, calendar_provider=provider)
    return storage.mark_study_plan_integrated(plan.id)
