"""Step sequences and the drive loop that advances them."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Type

from pydantic import BaseModel, Field, model_validator

from .buttons import WorkflowButton
from .constants import DEFAULT_AUTO_EXECUTION_DELAY, NEVER
from .context import utcnow
from .contracts import WorkflowStepResult, WorkflowStepStatus
from .errors import WorkflowError
from .history import HistoryItem, HistoryTrigger

if TYPE_CHECKING:
    from .context import ExecutionContext
    from .graph import StepGraph
    from .steps import WorkflowStep

logger = logging.getLogger(__name__)


def _default_schedule() -> datetime:
    return utcnow() + DEFAULT_AUTO_EXECUTION_DELAY


class WorkflowStepSequence(BaseModel):
    """An independently progressing chain of steps.

    A sequence points into the ``StepGraph`` of its workflow: it starts at
    ``first_step_id``, remembers the step it is currently waiting in and
    appends a ``HistoryItem`` for every step it leaves. ``current_step_id`` is
    ``None`` once the sequence completed or was canceled.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    first_step_id: str
    current_step_id: Optional[str] = None
    last_step_id: Optional[str] = None
    history: List[HistoryItem] = Field(default_factory=list)
    is_canceled: bool = False
    auto_execution_schedule: datetime = Field(default_factory=_default_schedule)
    current_step_entered_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _start_at_first_step(cls, data: Any) -> Any:
        if isinstance(data, dict) and "current_step_id" not in data:
            data = {**data, "current_step_id": data.get("first_step_id")}
        return data

    @property
    def is_completed(self) -> bool:
        return self.current_step_id is None

    @classmethod
    def build(
        cls,
        graph: "StepGraph",
        steps: List["WorkflowStep"],
        last_step: Optional["WorkflowStep"] = None,
    ) -> "WorkflowStepSequence":
        """Create a sequence running ``steps`` one after another.

        A ``StartAction`` is put in front of them. When ``last_step`` is given
        it is bound as the terminal step of the sequence.
        """
        from .steps import StartAction

        start = graph.add(StartAction())
        last_step_id = None
        if last_step is not None:
            graph.add(last_step)
            start.next_step_id = last_step.id
            last_step_id = last_step.id
        for step in steps:
            graph.add_step_after_last_steps(start.id, step)
        return cls(first_step_id=start.id, last_step_id=last_step_id)

    def add_steps_after_last_steps(
        self, graph: "StepGraph", steps: List["WorkflowStep"]
    ) -> None:
        for step in steps:
            graph.add_step_after_last_steps(self.first_step_id, step)

    # ------------------------------------------------------------------
    # Drive loop
    def execute(self, ctx: "ExecutionContext") -> None:
        """Execute the current step and keep going for as long as steps advance."""
        advances = 0
        while not self.is_completed:
            step = ctx.graph.get(self.current_step_id)
            result = step.execute(ctx)
            self._apply_result(ctx, result, HistoryTrigger.EXECUTION)
            if not result.is_execution_completed:
                break
            advances += 1
            if ctx.max_auto_advance is not None and advances > ctx.max_auto_advance:
                raise WorkflowError(
                    f"Workflow step sequence {self.id} advanced more than {ctx.max_auto_advance} times in a single drive."
                )

    def _apply_result(
        self,
        ctx: "ExecutionContext",
        result: WorkflowStepResult,
        trigger: HistoryTrigger,
        comment: Optional[str] = None,
    ) -> None:
        if not result.is_execution_completed:
            if result.changes_schedule:
                self.auto_execution_schedule = result.not_before
            return

        current_id = self.current_step_id
        if not ctx.graph.is_direct_predecessor_of(current_id, result.next_step_id):
            raise WorkflowError(
                f"Workflow step {result.next_step_id} is not a possible next step of current step {current_id}."
            )
        step = ctx.graph.get(current_id)
        self.history.append(
            HistoryItem(
                step_id=current_id,
                step_type=step.duration_key,
                passed_by=ctx.passed_by,
                entered_at=self.current_step_entered_at or ctx.now,
                passed_at=ctx.now,
                trigger=trigger,
                comment=comment,
            )
        )
        ctx.passed_steps.append(current_id)
        self.auto_execution_schedule = NEVER
        logger.debug(f"Sequence {self.id} passed step {current_id} -> {result.next_step_id}")
        self._enter(ctx, result.next_step_id)

    def _enter(self, ctx: "ExecutionContext", step_id: Optional[str]) -> None:
        step = ctx.graph.get(step_id) if step_id is not None else None
        if step is None or step.is_terminal:
            self.current_step_id = None
            self.current_step_entered_at = None
            self._run_terminal_step(ctx, step)
            return
        self.current_step_id = step_id
        self.current_step_entered_at = ctx.now
        step.reset(ctx)

    def _run_terminal_step(
        self, ctx: "ExecutionContext", step: Optional["WorkflowStep"] = None
    ) -> None:
        if step is None and self.last_step_id is not None:
            step = ctx.graph.get(self.last_step_id)
        if step is not None:
            step.execute(ctx)

    def cancel(self, ctx: "ExecutionContext") -> None:
        if self.is_completed:
            return
        ctx.graph.get(self.current_step_id).cancel(ctx)
        self.current_step_id = None
        self.current_step_entered_at = None
        self.auto_execution_schedule = NEVER
        self.is_canceled = True
        self._run_terminal_step(ctx)

    def reset(self, ctx: "ExecutionContext") -> None:
        """Rewind to the first step. History is kept."""
        if self.current_step_id is not None:
            ctx.graph.get(self.current_step_id).reset(ctx)
        self.current_step_id = self.first_step_id
        self.current_step_entered_at = ctx.now
        self.is_canceled = False

    def go_to(
        self, ctx: "ExecutionContext", step_id: str
    ) -> Optional["WorkflowStepSequence"]:
        """Make ``step_id`` the current step of this sequence or of a nested branch.

        Returns the sequence that owns the step, or ``None`` if neither this
        sequence nor any of its branches contains it.
        """
        graph = ctx.graph
        if step_id == self.current_step_id:
            return self
        if step_id == self.first_step_id or graph.is_successor_of(step_id, self.first_step_id):
            self._move_to(ctx, step_id)
            graph.get(step_id).reset(ctx)
            return self
        for step in self._iter_own_steps(graph):
            for branch in step.iter_branches():
                owner = branch.go_to(ctx, step_id)
                if owner is not None:
                    if self.current_step_id != step.id:
                        self._move_to(ctx, step.id)
                    return owner
        return None

    def _move_to(self, ctx: "ExecutionContext", step_id: str) -> None:
        if self.current_step_id is not None:
            ctx.graph.get(self.current_step_id).reset(ctx)
        self.current_step_id = step_id
        self.current_step_entered_at = ctx.now
        self.auto_execution_schedule = NEVER

    # ------------------------------------------------------------------
    # Buttons
    def _routing_step(self, graph: "StepGraph") -> Optional["WorkflowStep"]:
        if self.is_completed:
            return graph.find(self.last_step_id)
        return graph.get(self.current_step_id)

    def get_view_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        step = self._routing_step(ctx.graph)
        return step.get_view_form_buttons(ctx) if step is not None else []

    def get_edit_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        step = self._routing_step(ctx.graph)
        return step.get_edit_form_buttons(ctx) if step is not None else []

    def find_button(self, ctx: "ExecutionContext", sender_id: str) -> Optional[WorkflowButton]:
        step = self._routing_step(ctx.graph)
        return step.find_button(ctx, sender_id) if step is not None else None

    def button_click(
        self, ctx: "ExecutionContext", sender_id: str, prompt_input: Optional[str] = None
    ) -> bool:
        """Route a click to the current step; returns whether a button handled it."""
        step = self._routing_step(ctx.graph)
        if step is None:
            return False
        result = step.button_click(ctx, sender_id, prompt_input)
        if result is None:
            return False
        if not self.is_completed and result.changes_schedule:
            self._apply_result(ctx, result, HistoryTrigger.BUTTON, comment=prompt_input)
        return True

    def find_leaf_sequence_of(
        self, ctx: "ExecutionContext", sender_id: str
    ) -> Optional["WorkflowStepSequence"]:
        """Innermost sequence whose current step owns the button directly."""
        step = self._routing_step(ctx.graph)
        if step is None:
            return None
        if step.has_direct_association_to(ctx, sender_id):
            return self
        return step.find_leaf_sequence_of(ctx, sender_id)

    def get_undo_buttons(self, graph: "StepGraph") -> List[WorkflowButton]:
        """Undo buttons of the steps this sequence has passed, one per target.

        Buttons of an active parallelism's branches come first, then those of
        passed steps from the most recent backwards.
        """
        if self.is_canceled:
            return []
        buttons: List[WorkflowButton] = []
        current = graph.find(self.current_step_id)
        if current is not None and current.iter_branches():
            buttons.extend(current.get_undo_buttons_with_targets(graph))
        for item in reversed(self.history):
            step = graph.find(item.step_id)
            if step is None:
                continue
            if self.current_step_id is None or graph.is_successor_of(
                self.current_step_id, item.step_id
            ):
                buttons.extend(step.get_undo_buttons_with_targets(graph))

        unique: List[WorkflowButton] = []
        targets = set()
        for button in buttons:
            if button.target_step_id not in targets:
                targets.add(button.target_step_id)
                unique.append(button)
        return unique

    # ------------------------------------------------------------------
    # Queries
    def _iter_own_steps(self, graph: "StepGraph") -> Iterator["WorkflowStep"]:
        step_ids = list(graph.iter_reachable(self.first_step_id))
        if self.last_step_id is not None and self.last_step_id not in step_ids:
            step_ids.append(self.last_step_id)
        for step_id in step_ids:
            yield graph.get(step_id)

    def iter_sequences(self, graph: "StepGraph") -> Iterator["WorkflowStepSequence"]:
        """This sequence followed by all nested branch sequences."""
        yield self
        for step in self._iter_own_steps(graph):
            for branch in step.iter_branches():
                yield from branch.iter_sequences(graph)

    def find_active_steps(self, graph: "StepGraph") -> List["WorkflowStep"]:
        if self.is_completed:
            return []
        current = graph.get(self.current_step_id)
        active = [current]
        for branch in current.iter_branches():
            active.extend(branch.find_active_steps(graph))
        return active

    def find_completed_preceding_steps(self, graph: "StepGraph") -> List["WorkflowStep"]:
        """Passed steps that lead to the current position, most recent first."""
        completed: List["WorkflowStep"] = []
        seen = set()
        current = graph.find(self.current_step_id)
        if current is not None:
            for branch in current.iter_branches():
                for step in branch.find_completed_preceding_steps(graph):
                    if step.id not in seen:
                        seen.add(step.id)
                        completed.append(step)
        for item in reversed(self.history):
            if item.step_id in seen:
                continue
            step = graph.find(item.step_id)
            if step is None:
                continue
            if self.current_step_id is None or graph.is_successor_of(
                self.current_step_id, item.step_id
            ):
                seen.add(step.id)
                completed.append(step)
                for branch in step.iter_branches():
                    for nested in branch.find_completed_preceding_steps(graph):
                        if nested.id not in seen:
                            seen.add(nested.id)
                            completed.append(nested)
        return completed

    def get_status_of(self, graph: "StepGraph", step_id: str) -> WorkflowStepStatus:
        if any(step.id == step_id for step in self.find_active_steps(graph)):
            return WorkflowStepStatus.ACTIVE
        if any(step.id == step_id for step in self.find_completed_preceding_steps(graph)):
            return WorkflowStepStatus.COMPLETED
        return WorkflowStepStatus.INITIAL

    def find_history_items_for(self, graph: "StepGraph", step_id: str) -> List[HistoryItem]:
        return [
            item
            for sequence in self.iter_sequences(graph)
            for item in sequence.history
            if item.step_id == step_id
        ]

    def find_steps_of_type(
        self, graph: "StepGraph", step_type: Type["WorkflowStep"], cascaded: bool = True
    ) -> List["WorkflowStep"]:
        found = []
        for step in self._iter_own_steps(graph):
            if isinstance(step, step_type):
                found.append(step)
            if cascaded:
                for branch in step.iter_branches():
                    found.extend(branch.find_steps_of_type(graph, step_type, cascaded))
        return found

    def find_last_step_of_type(
        self, graph: "StepGraph", step_type: Type["WorkflowStep"]
    ) -> Optional["WorkflowStep"]:
        """The most recently reached step of ``step_type``, active steps first."""
        for step in self.find_active_steps(graph):
            if isinstance(step, step_type):
                return step
        passed = sorted(
            (item for sequence in self.iter_sequences(graph) for item in sequence.history),
            key=lambda item: item.passed_at,
            reverse=True,
        )
        for item in passed:
            step = graph.find(item.step_id)
            if isinstance(step, step_type):
                return step
        return None

    def find_last_history_item_for_last_step_of_type(
        self, graph: "StepGraph", step_type: Type["WorkflowStep"]
    ) -> Optional[HistoryItem]:
        step = self.find_last_step_of_type(graph, step_type)
        if step is None:
            return None
        items = self.find_history_items_for(graph, step.id)
        return items[-1] if items else None

    def get_status_of_last_step_of_type(
        self, graph: "StepGraph", step_type: Type["WorkflowStep"]
    ) -> Optional[WorkflowStepStatus]:
        step = self.find_last_step_of_type(graph, step_type)
        if step is None:
            return None
        return self.get_status_of(graph, step.id)

    def get_title(self, graph: "StepGraph") -> str:
        step = graph.find(self.current_step_id)
        return step.get_title() if step is not None else ""

    def get_icon_url(self, graph: "StepGraph") -> Optional[str]:
        step = graph.find(self.current_step_id)
        return step.get_icon_url() if step is not None else None

