"""
Exception types shared by the extraction, planning, export and storage layers.

Extraction and date-parsing problems never show up here: the oracle adapter
degrades to empty or placeholder data instead. What remains are caller errors
(bad input) and storage failures, which both propagate.
"""
from __future__ import annotations


class StudyPlanError(Exception):
    """Base class for all errors raised by this project."""


class ValidationError(StudyPlanError):
    """Input rejected before any side effect took place."""

    def __init__(self, message: str = "Validation failed", errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


class InvalidStatusTransition(ValidationError):
    """A syllabus status change that would leave a terminal state."""


class EmptyCalendarError(ValidationError):
    """Raised when asked to encode a calendar without any events."""


class NotFoundError(StudyPlanError):
    """A referenced entity does not exist."""

    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class StorageError(StudyPlanError):
    """The persistence backend failed; nothing downstream can proceed."""
