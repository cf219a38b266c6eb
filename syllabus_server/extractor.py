"""
Syllabus extraction adapter.

Delegates document understanding to an :class:`~syllabus_server.oracle.ExtractionOracle`
and turns whatever comes back into an :class:`ExtractionResult`. The oracle is
treated as best-effort: malformed output, unreadable dates and failed calls
degrade to empty or placeholder data, never to an exception.
"""
from __future__ import annotations

import logging
import typing as t
from datetime import datetime

from prompts import EXTRACTION_PROMPT, FALLBACK_EXTRACTION_PROMPT, load_prompt
from services.shared.utils import parse_due_date, utcnow
from .json_parsing import parse_json_object
from .models import ExtractedEvent, ExtractionResult, normalize_event_type
from .oracle import ExtractionOracle
from .pdf_utils import extract_pdf_text

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_THRESHOLD = 1024 * 1024  # bytes
FALLBACK_TEXT_LIMIT = 15000                # characters sent with the reduced prompt


def _optional_str(value: t.Any) -> t.Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def convert_oracle_data(
    data: dict[str, t.Any],
    syllabus_id: t.Optional[int] = None,
    now: t.Optional[datetime] = None,
) -> ExtractionResult:
    """
    Convert a parsed oracle JSON object into an ExtractionResult.

    Unknown event types become ``other`` and non-object entries are skipped.
    Unreadable due dates are replaced by ``now``; the event is kept.
    """
    now = now or utcnow()
    raw_events = data.get("events")
    if not isinstance(raw_events, list):
        raw_events = []

    events: list[ExtractedEvent] = []
    for raw in raw_events:
        if not isinstance(raw, dict):
            continue
        event_type = normalize_event_type(raw.get("eventType"))
        title = _optional_str(raw.get("title")) or f"Untitled {event_type}"
        events.append(
            ExtractedEvent(
                event_type=event_type,
                title=title,
                due_date=parse_due_date(raw.get("dueDate"), now=now),
                description=_optional_str(raw.get("description")),
            )
        )

    return ExtractionResult(
        course_code=_optional_str(data.get("courseCode")),
        course_name=_optional_str(data.get("courseName")),
        instructor=_optional_str(data.get("instructor")),
        term=_optional_str(data.get("term")),
        events=events,
        syllabus_id=syllabus_id,
    )


class SyllabusExtractor:
    """Extracts course metadata and events from syllabus text or PDF bytes."""

    def __init__(
        self,
        oracle: ExtractionOracle,
        fallback_threshold: int = DEFAULT_FALLBACK_THRESHOLD,
        prompt: t.Optional[str] = None,
        fallback_prompt: t.Optional[str] = None,
    ) -> None:
        self.oracle = oracle
        self.fallback_threshold = fallback_threshold
        self.prompt = prompt if prompt is not None else load_prompt(EXTRACTION_PROMPT)
        self.fallback_prompt = (
            fallback_prompt if fallback_prompt is not None else load_prompt(FALLBACK_EXTRACTION_PROMPT)
        )

    def _to_result(self, raw: str, syllabus_id: t.Optional[int]) -> ExtractionResult:
        parsed = parse_json_object(raw)
        if not parsed.ok:
            logger.warning("Could not parse oracle response for syllabus %s: %s", syllabus_id, parsed.error)
            return ExtractionResult(syllabus_id=syllabus_id)
        result = convert_oracle_data(parsed.data or {}, syllabus_id=syllabus_id)
        logger.info("Extracted %d event(s) for syllabus %s", len(result.events), syllabus_id)
        return result

    def extract_from_text(self, text: str, syllabus_id: t.Optional[int] = None) -> ExtractionResult:
        """Extract from plain syllabus text. Always returns a result."""
        try:
            raw = self.oracle.complete(self.prompt, text=text)
        except Exception:
            logger.exception("Oracle call failed for syllabus %s", syllabus_id)
            return ExtractionResult(syllabus_id=syllabus_id)
        return self._to_result(raw, syllabus_id)

    def extract_from_pdf(
        self,
        pdf_bytes: bytes,
        syllabus_id: t.Optional[int] = None,
        filename: t.Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract from raw PDF bytes.

        A failed oracle call on a payload larger than ``fallback_threshold``
        is retried once with the reduced prompt.
        """
        try:
            raw = self.oracle.complete(self.prompt, pdf_bytes=pdf_bytes, filename=filename)
        except Exception:
            if len(pdf_bytes) <= self.fallback_threshold:
                logger.exception("Oracle call failed for syllabus %s", syllabus_id)
                return ExtractionResult(syllabus_id=syllabus_id)
            logger.warning(
                "Oracle call failed for large PDF (%d bytes, syllabus %s); retrying with reduced prompt",
                len(pdf_bytes),
                syllabus_id,
                exc_info=True,
            )
            return self._retry_with_fallback(pdf_bytes, syllabus_id, filename)
        return self._to_result(raw, syllabus_id)

    def _retry_with_fallback(
        self,
        pdf_bytes: bytes,
        syllabus_id: t.Optional[int],
        filename: t.Optional[str],
    ) -> ExtractionResult:
        text = ""
        try:
            text = extract_pdf_text(pdf_bytes)
        except Exception:
            logger.warning("Local text extraction failed for syllabus %s", syllabus_id, exc_info=True)

        try:
            if text:
                raw = self.oracle.complete(self.fallback_prompt, text=text[:FALLBACK_TEXT_LIMIT])
            else:
                raw = self.oracle.complete(self.fallback_prompt, pdf_bytes=pdf_bytes, filename=filename)
        except Exception:
            logger.exception("Fallback oracle call failed for syllabus %s", syllabus_id)
            return ExtractionResult(syllabus_id=syllabus_id)
        return self._to_result(raw, syllabus_id)
