"""Storage backends for posts, titles, lists and their relations."""

from __future__ import annotations

import logging

from ..config import Settings
from ..database import Database
from .base import SYSTEM_LISTS, ConflictError, NotFoundError, Storage, StorageError
from .memory import SAMPLE_TITLES, MemoryStorage
from .sql import SqlStorage

logger = logging.getLogger(__name__)

__all__ = [
    "SAMPLE_TITLES",
    "SYSTEM_LISTS",
    "ConflictError",
    "MemoryStorage",
    "NotFoundError",
    "SqlStorage",
    "Storage",
    "StorageError",
    "create_storage",
]


async def create_storage(settings: Settings) -> Storage:
    """Pick the relational backend when a database is configured."""

    if settings.database_url:
        database = Database(settings.database_url)
        await database.create_all()
        logger.info("Using relational storage")
        return SqlStorage(database.session_factory, database)

    logger.info("No DATABASE_URL configured; using in-memory storage")
    return MemoryStorage(
        seed_titles=SAMPLE_TITLES if settings.seed_sample_titles else ()
    )
