"""
MCP Gateway Server - the study planner as tools.

Exposes extraction, session generation and ICS export to MCP clients. The
tools are plain wrappers around the same functions the HTTP service uses;
nothing is persisted here.
"""
from __future__ import annotations

import logging
import typing as t
from datetime import datetime

from fastmcp import FastMCP

from academic_planner.models import SessionDraft
from academic_planner.scheduler import generate_study_sessions as schedule_sessions
from productivity_server.ics import encode_ics
from productivity_server.mapping import build_calendar_events
from services.shared.config import Settings, configure_logging
from services.shared.errors import ValidationError
from services.shared.utils import ensure_utc
from syllabus_server.extractor import SyllabusExtractor
from syllabus_server.models import events_from_dicts
from syllabus_server.oracle import OpenAIOracle

logger = logging.getLogger(__name__)


def _parse_iso(value: t.Optional[str], name: str) -> datetime:
    try:
        return ensure_utc(datetime.fromisoformat((value or "").strip()))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date, got {value!r}", {name: "invalid"})


def create_gateway(extractor: SyllabusExtractor) -> FastMCP:
    """Create the MCP server with its tools bound to ``extractor``."""
    mcp = FastMCP("StudyPlannerGateway")

    @mcp.tool()
    def extract_syllabus_text(text: str) -> dict[str, t.Any]:
        """Extract course metadata and dated events from syllabus text.

        :param text: Full text of the syllabus.
        :return: course_code, course_name, instructor, term and a list of events
            (event_type, title, due_date as ISO-8601, description).
        """
        return extractor.extract_from_text(text).to_dict()

    @mcp.tool()
    def generate_study_sessions(
            start: str,
            end: str,
            sessions_per_week: int = 3,
            hours_per_session: float = 2,
            events: t.Optional[list[dict[str, t.Any]]] = None,
            course_code: t.Optional[str] = None,
    ) -> list[dict[str, t.Any]]:
        """Spread study sessions evenly between two dates.

        :param start: First day of the plan (ISO date).
        :param end: Last day of the plan (ISO date).
        :param sessions_per_week: Sessions per week, 1 to 7.
        :param hours_per_session: Hours per session, 1 to 8.
        :param events: Course events as returned by extract_syllabus_text; sessions
            within three days of one are titled after it.
        :param course_code: Course code used in generic session descriptions.
        :return: Sessions with title, description and ISO start/end times.
        """
        drafts = schedule_sessions(
            _parse_iso(start, "start"),
            _parse_iso(end, "end"),
            sessions_per_week,
            hours_per_session,
            events=events_from_dicts(events or []),
            course_code=course_code,
        )
        return [
            {
                "title": d.title,
                "description": d.description,
                "start_time": d.start_time.isoformat(),
                "end_time": d.end_time.isoformat(),
                "event_type": d.event_type,
            }
            for d in drafts
        ]

    @mcp.tool()
    def export_calendar_ics(
            events: t.Optional[list[dict[str, t.Any]]] = None,
            sessions: t.Optional[list[dict[str, t.Any]]] = None,
            course_code: t.Optional[str] = None,
    ) -> str:
        """Build an ICS document from course events and study sessions.

        :param events: Course events as returned by extract_syllabus_text.
        :param sessions: Sessions as returned by generate_study_sessions.
        :param course_code: Prefix for course event titles.
        :return: The ICS document.
        """
        drafts = [
            SessionDraft(
                title=s.get("title") or "Study Session",
                start_time=_parse_iso(s.get("start_time"), "start_time"),
                end_time=_parse_iso(s.get("end_time"), "end_time"),
                description=s.get("description"),
            )
            for s in (sessions or [])
        ]
        return encode_ics(build_calendar_events(events_from_dicts(events or []), drafts, course_code=course_code))

    return mcp


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)
    extractor = SyllabusExtractor(
        OpenAIOracle.from_settings(settings),
        fallback_threshold=settings.pdf_fallback_threshold,
    )
    logger.info("Starting MCP gateway (model=%s)", settings.openai_model)
    create_gateway(extractor).run()


if __name__ == "__main__":
    main()
