# -*- coding: utf-8 -*-
"""
Sequential, best-effort persistence of session drafts.

Each draft is written on its own. A failed write does not undo the earlier
ones and does not stop the later ones; callers should re-read the plan's
sessions from storage instead of trusting the draft list.
"""
from __future__ import annotations

import logging
import typing as t

from planner_store.base import Storage
from services.shared.errors import StorageError, ValidationError
from .models import BatchFailure, BatchResult, SessionDraft

logger = logging.getLogger(__name__)


def persist_sessions(storage: Storage, study_plan_id: int, drafts: t.Iterable[SessionDraft]) -> BatchResult:
    result = BatchResult()
    for index, draft in enumerate(drafts):
        try:
            created = storage.create_study_session(study_plan_id, **draft.as_fields())
        except (StorageError, ValidationError) as e:
            logger.warning("Could not save session %d (%r) for plan %s: %s", index, draft.title, study_plan_id, e)
            result.failures.append(BatchFailure(index=index, draft=draft, error=str(e)))
            continue
        result.created.append(created)

    if result.failures:
        logger.warning(
            "Saved %d of %d session(s) for plan %s",
            len(result.created),
            len(result.created) + len(result.failures),
            study_plan_id,
        )
    return result
