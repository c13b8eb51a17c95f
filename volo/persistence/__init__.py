"""Persistence layer for volo runs, cursors, goals and CRM records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import VoloConfig, load_config
from .inmemory import InMemoryRepository
from .models import (
    Contact,
    ContentItem,
    Goal,
    GoalProgress,
    GoalWorkflowLink,
    SyncCursor,
    WorkflowRun,
    WorkflowStep,
    WorkflowTemplate,
)
from .repository import VoloRepository
from .sql import SQLRepository

_repository_instance: VoloRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[VoloConfig] = None
) -> VoloRepository:
    """Factory function to obtain a repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``VOLO_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("VOLO_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryRepository()
    elif database_url.startswith(("sqlite", "postgres")):
        _repository_instance = SQLRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "Contact",
    "ContentItem",
    "Goal",
    "GoalProgress",
    "GoalWorkflowLink",
    "InMemoryRepository",
    "SQLRepository",
    "SyncCursor",
    "VoloRepository",
    "WorkflowRun",
    "WorkflowStep",
    "WorkflowTemplate",
    "get_repository",
]
