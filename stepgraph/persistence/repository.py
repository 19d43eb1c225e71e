"""Repository abstraction for workflow persistence."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..objects import BusinessObject
from ..workflow import Workflow


class WorkflowRepository(Protocol):
    """Protocol for workflow persistence backends.

    ``save_workflow`` uses optimistic concurrency: it fails with
    ``ConcurrencyError`` when the stored version differs from the version the
    workflow was loaded with, and increments the version on success.
    """

    async def create_workflow(self, workflow: Workflow) -> None:
        """Persist a new workflow."""

    async def save_workflow(self, workflow: Workflow) -> None:
        """Persist the current state of a loaded workflow."""

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Retrieve the workflow by id."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all persisted workflows."""

    async def find_due_workflows(self, now: datetime) -> list[Workflow]:
        """Return unfinished workflows scheduled at or before ``now``, earliest first."""

    async def find_workflows_for_object(self, object_id: str) -> list[Workflow]:
        """Return unfinished workflows associated with a business object."""

    async def average_duration(self, step_type: str) -> Optional[timedelta]:
        """Average time spent in steps of ``step_type`` across all workflows."""

    async def save_object(self, obj: BusinessObject) -> None:
        """Insert or replace a business object."""

    async def get_object(self, object_id: str) -> Optional[BusinessObject]:
        """Retrieve a business object by id."""
