"""Run history persistence for postmigrate."""

from __future__ import annotations

import os
from typing import Optional

from ..config import PostMigrateConfig, load_config
from .inmemory import InMemoryRunRepository
from .repository import RunRepository
from .sqlite import SQLiteRunRepository

_repository_instance: RunRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[PostMigrateConfig] = None
) -> RunRepository:
    """Factory function to obtain a run repository.

    The backend is selected from ``database_url``, which can be provided
    explicitly, via ``POSTMIGRATE_DATABASE_URL``, or from configuration. Without
    any of these, history is kept in ``history.db`` inside the log directory.
    ``memory://`` selects the in-memory repository.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("POSTMIGRATE_DATABASE_URL")
        or config.history.database_url
        or f"sqlite://{config.logging.directory / 'history.db'}"
    )

    if database_url.startswith("memory://"):
        return InMemoryRunRepository()
    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteRunRepository(path)
    raise ValueError(f"Unsupported history backend: {database_url}")


__all__ = [
    "RunRepository",
    "InMemoryRunRepository",
    "SQLiteRunRepository",
    "get_repository",
]
