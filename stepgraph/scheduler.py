"""Scheduler that drives persisted workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from .config import StepgraphConfig, load_config
from .context import ExecutionContext, utcnow
from .contracts import ButtonClickOutcome, DriveResult
from .errors import WorkflowError
from .objects import BusinessObject
from .persistence import WorkflowRepository, get_repository
from .workflow import Workflow

logger = logging.getLogger(__name__)


class WorkflowScheduler:
    """Loads workflows, drives them and saves the result.

    Each call works on a freshly loaded copy, so concurrent modifications are
    detected by the repository when saving.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        config: StepgraphConfig | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config or load_config()
        self._repository = repository or get_repository(config=self._config)
        self._clock = clock or utcnow

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    async def _load(self, workflow_id: str) -> Workflow:
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowError(f"Workflow {workflow_id} not found.")
        return workflow

    async def _load_object(self, workflow: Workflow) -> Optional[BusinessObject]:
        if workflow.associated_object_id is None:
            return None
        return await self._repository.get_object(workflow.associated_object_id)

    def _context(
        self,
        workflow: Workflow,
        associated_object: Optional[BusinessObject],
        now: Optional[datetime] = None,
        passed_by: Optional[str] = None,
    ) -> ExecutionContext:
        return workflow.context(
            associated_object=associated_object,
            now=now or self._clock(),
            passed_by=passed_by,
            max_auto_advance=self._config.engine.max_auto_advance,
        )

    # ------------------------------------------------------------------
    async def register(
        self, workflow: Workflow, associated_object: Optional[BusinessObject] = None
    ) -> Workflow:
        """Validate and persist a new workflow, optionally with its object."""
        workflow.validate_graph()
        if associated_object is not None:
            workflow.associated_object_id = associated_object.id
            await self._repository.save_object(associated_object)
        await self._repository.create_workflow(workflow)
        logger.info(f"Registered workflow {workflow.id} ({workflow.title})")
        return workflow

    async def drive(self, workflow_id: str, passed_by: Optional[str] = None) -> DriveResult:
        workflow = await self._load(workflow_id)
        ctx = self._context(workflow, await self._load_object(workflow), passed_by=passed_by)
        result = workflow.drive(ctx)
        await self._repository.save_workflow(workflow)
        return result

    async def run_due(self, now: Optional[datetime] = None) -> list[DriveResult]:
        """Drive every workflow whose schedule is due, earliest first.

        A failing workflow is logged and skipped; the others are still driven.
        """
        now = now or self._clock()
        logger.info("Begin of processing scheduled workflows...")
        results: list[DriveResult] = []
        for workflow in await self._repository.find_due_workflows(now):
            try:
                ctx = self._context(workflow, await self._load_object(workflow), now=now)
                result = workflow.drive(ctx)
                await self._repository.save_workflow(workflow)
            except Exception:
                logger.exception(f"Failed to execute scheduled workflow {workflow.id}")
                continue
            results.append(result)
        logger.info(f"...end of processing scheduled workflows ({len(results)} driven).")
        return results

    async def click(
        self,
        workflow_id: str,
        sender_id: str,
        prompt_input: Optional[str] = None,
        passed_by: Optional[str] = None,
    ) -> ButtonClickOutcome:
        workflow = await self._load(workflow_id)
        ctx = self._context(workflow, await self._load_object(workflow), passed_by=passed_by)
        outcome = workflow.handle_button_click(ctx, sender_id, prompt_input)
        if outcome.handled:
            await self._repository.save_workflow(workflow)
        return outcome

    async def submit_form(
        self,
        workflow_id: str,
        step_id: str,
        data: Dict[str, str],
        passed_by: Optional[str] = None,
    ) -> DriveResult:
        """Store form data on the associated object and the form step, then drive."""
        workflow = await self._load(workflow_id)
        associated_object = await self._load_object(workflow)
        if associated_object is not None:
            associated_object.update_fields(data)
            associated_object.mark_saved()
            await self._repository.save_object(associated_object)
        ctx = self._context(workflow, associated_object, passed_by=passed_by)
        result = workflow.submit_form(ctx, step_id, data)
        await self._repository.save_workflow(workflow)
        return result

    async def object_changed(self, associated_object: BusinessObject) -> list[DriveResult]:
        """Save a changed object and drive every unfinished workflow attached to it."""
        associated_object.mark_saved()
        await self._repository.save_object(associated_object)
        results: list[DriveResult] = []
        for workflow in await self._repository.find_workflows_for_object(associated_object.id):
            try:
                result = workflow.drive(self._context(workflow, associated_object))
                await self._repository.save_workflow(workflow)
            except Exception:
                logger.exception(
                    f"Failed to execute workflow {workflow.id} after change of object {associated_object.id}"
                )
                continue
            results.append(result)
        return results

    async def cancel(self, workflow_id: str, passed_by: Optional[str] = None) -> DriveResult:
        workflow = await self._load(workflow_id)
        ctx = self._context(workflow, await self._load_object(workflow), passed_by=passed_by)
        workflow.cancel(ctx)
        result = workflow.drive(ctx)
        await self._repository.save_workflow(workflow)
        return result

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Poll for due workflows until stopped.

        Args:
            lifespan: Maximum time in seconds to keep polling. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        interval = self._config.scheduler.poll_interval
        while True:
            await self.run_due()
            if lifespan is not None:
                remaining = lifespan - (loop.time() - start_time)
                if remaining <= 0:
                    break
                await asyncio.sleep(min(interval, remaining))
            else:
                await asyncio.sleep(interval)
