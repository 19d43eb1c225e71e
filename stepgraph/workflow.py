"""Top-level workflows bound to a business object."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from pydantic import Field

from .buttons import WorkflowButton
from .context import ExecutionContext, utcnow
from .contracts import ButtonClickOutcome, DriveResult
from .errors import BusinessRuleError, WorkflowError
from .graph import StepGraph
from .history import HistoryItem, HistoryTrigger
from .objects import WorkflowControlledObject
from .sequence import WorkflowStepSequence
from .steps import ChoiceStep, FormAction, LastStep, StartAction, WorkflowStep

logger = logging.getLogger(__name__)


class Workflow(WorkflowStepSequence):
    """A step sequence together with the graph it runs on.

    The workflow owns the ``StepGraph`` shared by itself and all nested
    branch sequences, so it can be persisted and loaded as one document.
    """

    title: str
    associated_object_id: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)
    graph: StepGraph = Field(default_factory=StepGraph)
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new(
        cls,
        title: str,
        steps: Iterable[WorkflowStep] = (),
        associated_object_id: Optional[str] = None,
        last_step: Optional[LastStep] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> "Workflow":
        """Create a workflow running ``steps`` in order between a start and a last step."""
        graph = StepGraph()
        start = graph.add(StartAction())
        last = graph.add(last_step or LastStep())
        start.next_step_id = last.id
        workflow = cls(
            title=title,
            graph=graph,
            first_step_id=start.id,
            last_step_id=last.id,
            associated_object_id=associated_object_id,
            variables=variables or {},
        )
        workflow.append_steps(steps)
        return workflow

    def append_steps(self, steps: Iterable[WorkflowStep]) -> None:
        self.add_steps_after_last_steps(self.graph, list(steps))

    def context(
        self,
        associated_object: Optional[WorkflowControlledObject] = None,
        now: Optional[datetime] = None,
        passed_by: Optional[str] = None,
        max_auto_advance: Optional[int] = None,
    ) -> ExecutionContext:
        return ExecutionContext(
            graph=self.graph,
            associated_object=associated_object,
            now=now or utcnow(),
            passed_by=passed_by,
            max_auto_advance=max_auto_advance,
        )

    # ------------------------------------------------------------------
    # Driving
    def drive(self, ctx: ExecutionContext) -> DriveResult:
        """Execute the workflow until every active step waits for a trigger."""
        mark = len(ctx.passed_steps)
        was_completed = self.is_completed
        self.execute(ctx)
        result = self._drive_result(ctx, mark)
        if self.is_completed and not was_completed:
            logger.info(f"Workflow {self.id} ({self.title}) completed")
        return result

    def _drive_result(self, ctx: ExecutionContext, mark: int) -> DriveResult:
        return DriveResult(
            workflow_id=self.id,
            current_step_id=self.current_step_id,
            is_completed=self.is_completed,
            is_canceled=self.is_canceled,
            auto_execution_schedule=self.auto_execution_schedule,
            advanced_steps=ctx.passed_steps[mark:],
        )

    def handle_button_click(
        self,
        ctx: ExecutionContext,
        sender_id: str,
        prompt_input: Optional[str] = None,
    ) -> ButtonClickOutcome:
        """Route a click to the step or undo button that offers it, then drive.

        Business rule violations raised by button handlers are reported in
        the outcome instead of being raised.
        """
        mark = len(ctx.passed_steps)
        leaf = self.find_leaf_sequence_of(ctx, sender_id)
        undo_button = None if leaf is not None else self.find_undo_button(sender_id)
        if leaf is None and undo_button is None:
            logger.warning(f"Button {sender_id} is not offered by workflow {self.id}")
            return ButtonClickOutcome(
                handled=False,
                error_message=f"Button {sender_id} is not available in the current state of the workflow.",
            )

        try:
            if undo_button is not None:
                undo_button.handle_click(prompt_input)
                self.undo(ctx, undo_button.target_step_id, comment=prompt_input)
            else:
                self.button_click(ctx, sender_id, prompt_input)
        except BusinessRuleError as exc:
            logger.warning(f"Button {sender_id} of workflow {self.id} was rejected: {exc}")
            return ButtonClickOutcome(handled=False, error_message=str(exc))

        self.execute(ctx)
        return ButtonClickOutcome(handled=True, drive=self._drive_result(ctx, mark))

    def submit_form(
        self, ctx: ExecutionContext, step_id: str, data: Dict[str, str]
    ) -> DriveResult:
        """Store submitted form data on an active form step and drive."""
        step = self.graph.get(step_id)
        if not isinstance(step, FormAction):
            raise WorkflowError(f"Workflow step {step_id} is not a form step.")
        if all(active.id != step_id for active in self.find_active_steps(self.graph)):
            raise WorkflowError(f"Form of workflow step {step_id} is not active.")
        mark = len(ctx.passed_steps)
        step.submit_form(data)
        self.execute(ctx)
        return self._drive_result(ctx, mark)

    def cancel(self, ctx: ExecutionContext) -> None:
        if self.is_completed:
            return
        super().cancel(ctx)
        logger.info(f"Workflow {self.id} ({self.title}) canceled")

    # ------------------------------------------------------------------
    # Undo and jumps
    def get_undo_buttons(self, graph: Optional[StepGraph] = None) -> List[WorkflowButton]:
        return super().get_undo_buttons(graph or self.graph)

    def find_undo_button(self, sender_id: str) -> Optional[WorkflowButton]:
        for button in self.get_undo_buttons():
            if button.button_id == sender_id:
                return button
        return None

    def undo(
        self, ctx: ExecutionContext, target_step_id: str, comment: Optional[str] = None
    ) -> None:
        """Move back to ``target_step_id``, record the re-entry and drive."""
        owner = super().go_to(ctx, target_step_id)
        if owner is None:
            raise WorkflowError(
                "Workflow step to be set as next step is not part of workflow step sequence."
            )
        target = self.graph.get(target_step_id)
        owner.history.append(
            HistoryItem(
                step_id=target_step_id,
                step_type=target.duration_key,
                passed_by=ctx.passed_by,
                entered_at=ctx.now,
                passed_at=ctx.now,
                trigger=HistoryTrigger.UNDO,
                comment=comment,
            )
        )
        logger.info(f"Workflow {self.id} was set back to step {target_step_id}")
        self.execute(ctx)

    def go_to(self, ctx: ExecutionContext, step_id: str) -> WorkflowStepSequence:
        owner = super().go_to(ctx, step_id)
        if owner is None:
            raise WorkflowError(
                "Workflow step to be set as next step is not part of workflow step sequence."
            )
        self.execute(ctx)
        return owner

    # ------------------------------------------------------------------
    # Structure
    def remove_step(self, step_id: str, reconnect: bool = False) -> List[str]:
        """Remove a step from the template and sweep steps only reachable through it."""
        protected: Set[str] = set()
        for sequence in self.iter_sequences(self.graph):
            protected.add(sequence.first_step_id)
            if sequence.last_step_id is not None:
                protected.add(sequence.last_step_id)
            if sequence.current_step_id is not None:
                protected.add(sequence.current_step_id)
        if step_id in protected:
            raise WorkflowError(
                f"Workflow step {step_id} is active or bounds a sequence and cannot be removed."
            )
        roots = [self.first_step_id]
        if self.last_step_id is not None:
            roots.append(self.last_step_id)
        return self.graph.remove_step(step_id, roots, reconnect=reconnect)

    def validate_graph(self) -> None:
        """Check the structural invariants of the step graph.

        Raises:
            WorkflowError: On dangling edges, choices without exactly two
                edges, steps shared between sequences, unowned steps or current
                steps outside their sequence.
        """
        for step in self.graph.steps.values():
            for next_id in step.possible_next_step_ids():
                if next_id is not None and next_id not in self.graph:
                    raise WorkflowError(
                        f"Workflow step {step.id} points at unknown workflow step {next_id}."
                    )
            if step.iter_branches() and len(step.possible_next_step_ids()) != 1:
                raise WorkflowError(
                    f"Parallelism step {step.id} must have exactly one next step."
                )
            if isinstance(step, ChoiceStep) and len(step.possible_next_step_ids()) != 2:
                raise WorkflowError(
                    f"Choice step {step.id} must have exactly two next steps."
                )

        owners: Dict[str, str] = {}
        for sequence in self.iter_sequences(self.graph):
            first = self.graph.get(sequence.first_step_id)
            if not isinstance(first, StartAction):
                raise WorkflowError(
                    f"Sequence {sequence.id} must start with a start action, not {first.kind}."
                )
            owned = set(self.graph.iter_reachable(sequence.first_step_id))
            if sequence.last_step_id is not None:
                owned.add(sequence.last_step_id)
            for step_id in owned:
                if owners.setdefault(step_id, sequence.id) != sequence.id:
                    raise WorkflowError(
                        f"Workflow step {step_id} belongs to more than one sequence."
                    )
            if sequence.current_step_id is not None and sequence.current_step_id not in owned:
                raise WorkflowError(
                    f"Current step {sequence.current_step_id} of sequence {sequence.id} is not reachable from its first step."
                )

        unowned = [step_id for step_id in self.graph.steps if step_id not in owners]
        if unowned:
            raise WorkflowError(
                f"Workflow steps {', '.join(sorted(unowned))} do not belong to any sequence."
            )

    # ------------------------------------------------------------------
    # Queries
    def get_view_form_buttons(self, ctx: ExecutionContext) -> List[WorkflowButton]:
        return super().get_view_form_buttons(ctx) + self.get_undo_buttons()

    def get_involved_roles(self, ctx: ExecutionContext) -> List[str]:
        """Users who passed steps so far plus roles allowed to act on active steps."""
        involved: List[str] = []
        for sequence in self.iter_sequences(self.graph):
            for item in sequence.history:
                if item.passed_by and item.passed_by not in involved:
                    involved.append(item.passed_by)
        buttons = super().get_view_form_buttons(ctx) + self.get_edit_form_buttons(ctx)
        for button in buttons:
            for role in button.template.allowed_roles:
                if role not in involved:
                    involved.append(role)
        return involved

    @property
    def status(self) -> str:
        if self.is_canceled:
            return "canceled"
        if self.is_completed:
            return "completed"
        return "active"
