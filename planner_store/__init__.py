# -*- coding: utf-8 -*-
import logging

from services.shared.config import Settings
from .base import Storage
from .memory import MemoryStorage
from .sql import SqlStorage

logger = logging.getLogger(__name__)


def create_storage(settings: Settings) -> Storage:
    """Construct the storage backend named by ``settings.storage_backend``."""
    if settings.storage_backend == "sql":
        logger.info("Using SQL storage at %s", settings.database_url)
        return SqlStorage(settings.database_url)
    logger.info("Using in-memory storage (single process, not persistent)")
    return MemoryStorage()


__all__ = ["Storage", "MemoryStorage", "SqlStorage", "create_storage"]
