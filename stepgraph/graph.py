"""Arena of workflow steps indexed by id, with the traversals built on it."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional

from pydantic import BaseModel, Field

from .constants import NO_DISTANCE
from .errors import WorkflowError
from .steps import ActionStep, AnyStep, WorkflowStep

logger = logging.getLogger(__name__)


class ClosestCommonStep(NamedTuple):
    step_id: Optional[str]
    distance: int


class StepGraph(BaseModel):
    """All steps of one workflow, including the steps of nested branches.

    Edges are step ids. Every traversal keeps a visited set, so cyclic
    graphs are walked in bounded time.
    """

    steps: Dict[str, AnyStep] = Field(default_factory=dict)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self.steps

    def __len__(self) -> int:
        return len(self.steps)

    def add(self, step: WorkflowStep) -> WorkflowStep:
        if step.id in self.steps:
            raise WorkflowError(f"Workflow step {step.id} is already part of the step graph.")
        self.steps[step.id] = step
        return step

    def get(self, step_id: str) -> WorkflowStep:
        try:
            return self.steps[step_id]
        except KeyError:
            raise WorkflowError(
                f"Workflow step {step_id} is not part of the step graph."
            ) from None

    def find(self, step_id: Optional[str]) -> Optional[WorkflowStep]:
        if step_id is None:
            return None
        return self.steps.get(step_id)

    def possible_next_steps(self, step_id: str) -> List[Optional[WorkflowStep]]:
        return [
            self.get(next_id) if next_id is not None else None
            for next_id in self.get(step_id).possible_next_step_ids()
        ]

    # ------------------------------------------------------------------
    # Reachability
    def iter_reachable(self, start_id: str, follow_branches: bool = False) -> Iterator[str]:
        """Yield ``start_id`` and every step reachable from it, breadth first."""
        visited = {start_id}
        queue = deque([start_id])
        while queue:
            step_id = queue.popleft()
            yield step_id
            step = self.get(step_id)
            next_ids = [i for i in step.possible_next_step_ids() if i is not None]
            if follow_branches:
                for branch in step.iter_branches():
                    next_ids.append(branch.first_step_id)
                    if branch.last_step_id is not None:
                        next_ids.append(branch.last_step_id)
            for next_id in next_ids:
                if next_id not in visited:
                    visited.add(next_id)
                    queue.append(next_id)

    def is_direct_predecessor_of(self, step_id: str, other_id: Optional[str]) -> bool:
        """Whether ``other_id`` is one of the edges of ``step_id``.

        Every step may end its sequence, so ``None`` always qualifies.
        """
        if other_id is None:
            return True
        return other_id in self.get(step_id).possible_next_step_ids()

    def is_successor_of(self, step_id: str, other_id: str) -> bool:
        """Whether ``step_id`` can be reached from ``other_id`` (a step never succeeds itself)."""
        if step_id == other_id:
            return False
        return any(
            reachable == step_id for reachable in self.iter_reachable(other_id)
        )

    def find_closest_common_next_step(self, step_id: str, other_id: str) -> ClosestCommonStep:
        """Find the nearest step reachable from both ``step_id`` and ``other_id``.

        The distance is counted in hops from ``step_id``. A step that is
        ``other_id`` or succeeds it is a hit at distance 0.
        """
        reachable_from_other = set(self.iter_reachable(other_id))
        visited = {step_id}
        queue = deque([(step_id, 0)])
        while queue:
            current_id, distance = queue.popleft()
            if current_id in reachable_from_other:
                return ClosestCommonStep(current_id, distance)
            for next_id in self.get(current_id).possible_next_step_ids():
                if next_id is not None and next_id not in visited:
                    visited.add(next_id)
                    queue.append((next_id, distance + 1))
        return ClosestCommonStep(None, NO_DISTANCE)

    # ------------------------------------------------------------------
    # Editing
    def find_last_steps(self, first_step_id: str) -> List[WorkflowStep]:
        """Non-terminal steps whose edges all end the sequence."""
        last_steps = []
        for step_id in self.iter_reachable(first_step_id):
            step = self.get(step_id)
            if step.is_terminal:
                continue
            if all(
                next_id is None or self.get(next_id).is_terminal
                for next_id in step.possible_next_step_ids()
            ):
                last_steps.append(step)
        return last_steps

    def add_step_after_last_steps(self, first_step_id: str, step: WorkflowStep) -> None:
        """Connect ``step`` behind every last step of the chain starting at ``first_step_id``."""
        last_steps = self.find_last_steps(first_step_id)
        if not last_steps:
            raise WorkflowError(
                f"No last workflow step found to add workflow step {step.id} after."
            )
        for last_step in last_steps:
            if not isinstance(last_step, ActionStep):
                raise WorkflowError(
                    f"A new workflow step cannot be added to a workflow step of type {type(last_step).__name__} automatically."
                )

        if step.id not in self.steps:
            self.add(step)
        tail = next(
            (s.next_step_id for s in last_steps if s.next_step_id is not None), None
        )
        for last_step in last_steps:
            last_step.next_step_id = step.id
        if tail is not None:
            step.replace_possible_next_step(None, tail)

    def replace_possible_next_step(self, old: str, new: Optional[str]) -> bool:
        """Rewire every edge of every step that points at ``old``."""
        replaced = False
        for step in self.steps.values():
            if step.replace_possible_next_step(old, new):
                replaced = True
        return replaced

    def predecessors_of(self, step_id: str) -> List[WorkflowStep]:
        return [
            step for step in self.steps.values() if step_id in step.possible_next_step_ids()
        ]

    def remove_step(
        self, step_id: str, roots: Iterable[str], reconnect: bool = False
    ) -> List[str]:
        """Remove a step and sweep every step that is no longer reachable.

        Edges pointing at the removed step are cleared, or with ``reconnect``
        pointed at its single next step. Returns the ids of all removed steps.
        """
        step = self.get(step_id)
        replacement: Optional[str] = None
        if reconnect:
            next_ids = step.possible_next_step_ids()
            if len(next_ids) != 1:
                raise WorkflowError(
                    f"Workflow step {step_id} cannot be removed with reconnection because it has {len(next_ids)} next steps."
                )
            replacement = next_ids[0]

        self.replace_possible_next_step(step_id, replacement)
        del self.steps[step_id]

        reachable: set[str] = set()
        for root in roots:
            if root in self.steps and root not in reachable:
                reachable.update(self.iter_reachable(root, follow_branches=True))
        swept = [sid for sid in self.steps if sid not in reachable]
        for sid in swept:
            del self.steps[sid]

        logger.debug(f"Removed workflow step {step_id} and {len(swept)} unreachable steps")
        return [step_id] + swept
