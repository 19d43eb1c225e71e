"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional

from ..errors import ConcurrencyError, WorkflowError
from ..history import HistoryAnalytics
from ..objects import BusinessObject
from ..workflow import Workflow
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflows in local memory.

    Useful for tests or when no database is configured. Workflows are kept as
    JSON documents, so every load returns an independent copy. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, str] = {}
        self._versions: Dict[str, int] = {}
        self._objects: Dict[str, str] = {}

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> None:
        if workflow.id in self._workflows:
            raise WorkflowError(f"Workflow {workflow.id} already exists.")
        self._workflows[workflow.id] = workflow.model_dump_json()
        self._versions[workflow.id] = workflow.version

    async def save_workflow(self, workflow: Workflow) -> None:
        stored_version = self._versions.get(workflow.id)
        if stored_version is None:
            raise WorkflowError(f"Workflow {workflow.id} does not exist.")
        if stored_version != workflow.version:
            raise ConcurrencyError(
                f"Workflow {workflow.id} was changed concurrently (version {stored_version}, expected {workflow.version})."
            )
        workflow.version += 1
        self._workflows[workflow.id] = workflow.model_dump_json()
        self._versions[workflow.id] = workflow.version

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        document = self._workflows.get(workflow_id)
        if document is None:
            return None
        return Workflow.model_validate_json(document)

    async def list_workflows(self) -> list[Workflow]:
        return [Workflow.model_validate_json(doc) for doc in self._workflows.values()]

    async def find_due_workflows(self, now: datetime) -> list[Workflow]:
        due = [
            workflow
            for workflow in await self.list_workflows()
            if not workflow.is_completed and workflow.auto_execution_schedule <= now
        ]
        return sorted(due, key=lambda workflow: workflow.auto_execution_schedule)

    async def find_workflows_for_object(self, object_id: str) -> list[Workflow]:
        return [
            workflow
            for workflow in await self.list_workflows()
            if workflow.associated_object_id == object_id and not workflow.is_completed
        ]

    async def average_duration(self, step_type: str) -> Optional[timedelta]:
        analytics = HistoryAnalytics.from_workflows(await self.list_workflows())
        return analytics.average_duration(step_type)

    async def save_object(self, obj: BusinessObject) -> None:
        self._objects[obj.id] = obj.model_dump_json()

    async def get_object(self, object_id: str) -> Optional[BusinessObject]:
        document = self._objects.get(object_id)
        if document is None:
            return None
        return BusinessObject.model_validate_json(document)
