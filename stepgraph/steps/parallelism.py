"""Parallel composition of independent step sequences."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Literal, Optional

from pydantic import Field

from ..buttons import WorkflowButton
from ..contracts import WorkflowStepResult
from ..sequence import WorkflowStepSequence
from .base import ActionStep

if TYPE_CHECKING:
    from ..context import ExecutionContext
    from ..graph import StepGraph

logger = logging.getLogger(__name__)


class ParallelismAction(ActionStep):
    """Runs its branches side by side and moves on once all of them completed.

    Branches are executed in declared order within a single drive. Buttons
    and undo buttons are only ever found inside the branches.
    """

    kind: Literal["parallelism"] = "parallelism"
    title: str = ""
    branches: List[WorkflowStepSequence] = Field(default_factory=list)

    def iter_branches(self) -> List[WorkflowStepSequence]:
        return list(self.branches)

    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        for branch in self.branches:
            branch.execute(ctx)

        pending = [branch for branch in self.branches if not branch.is_completed]
        if not pending:
            logger.debug(f"All {len(self.branches)} branches of step {self.id} completed")
            return WorkflowStepResult.advance(self.next_step_id)
        return WorkflowStepResult.wait_until(
            min(branch.auto_execution_schedule for branch in pending)
        )

    def cancel(self, ctx: "ExecutionContext") -> None:
        for branch in self.branches:
            branch.cancel(ctx)
        self.reset(ctx)

    def reset(self, ctx: "ExecutionContext") -> None:
        for branch in self.branches:
            branch.reset(ctx)

    # ------------------------------------------------------------------
    # Buttons
    def get_view_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return [
            button
            for branch in self.branches
            for button in branch.get_view_form_buttons(ctx)
        ]

    def get_edit_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return [
            button
            for branch in self.branches
            for button in branch.get_edit_form_buttons(ctx)
        ]

    def button_click(
        self, ctx: "ExecutionContext", sender_id: str, prompt_input: Optional[str] = None
    ) -> Optional[WorkflowStepResult]:
        handled = False
        for branch in self.branches:
            if branch.button_click(ctx, sender_id, prompt_input):
                handled = True
        return WorkflowStepResult.wait() if handled else None

    def has_direct_association_to(self, ctx: "ExecutionContext", sender_id: str) -> bool:
        if self.find_button(ctx, sender_id) is None:
            return False
        return not any(
            branch.find_button(ctx, sender_id) is not None for branch in self.branches
        )

    def find_leaf_sequence_of(
        self, ctx: "ExecutionContext", sender_id: str
    ) -> Optional[WorkflowStepSequence]:
        for branch in self.branches:
            sequence = branch.find_leaf_sequence_of(ctx, sender_id)
            if sequence is not None:
                return sequence
        return None

    # ------------------------------------------------------------------
    # Undo
    def get_undo_buttons(self) -> List[WorkflowButton]:
        return []

    def get_undo_buttons_with_targets(self, graph: "StepGraph") -> List[WorkflowButton]:
        return [
            button for branch in self.branches for button in branch.get_undo_buttons(graph)
        ]
