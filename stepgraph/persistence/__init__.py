"""Storage backends for workflows, their history and associated objects."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepgraphConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def _open_repository(database_url: Optional[str]) -> WorkflowRepository:
    if not database_url or database_url == "memory://":
        return InMemoryWorkflowRepository()
    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite" and location:
        return SQLiteWorkflowRepository(location)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[StepgraphConfig] = None
) -> WorkflowRepository:
    """Return the process wide workflow repository.

    Without arguments the repository opened by an earlier call is reused.
    Otherwise the backend is chosen from ``database_url``, the
    ``STEPGRAPH_DATABASE_URL``/``DATABASE_URL`` environment variables or the
    ``database_url`` of the configuration, in that order. ``sqlite://<path>``
    opens a SQLite file; no URL at all (or ``memory://``) keeps workflows in
    memory.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    _repository_instance = _open_repository(
        database_url
        or os.getenv("STEPGRAPH_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )
    return _repository_instance


__all__ = [
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
