"""Abstract step types and the contract every step kind implements."""

from __future__ import annotations

import abc
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING, ClassVar, List, Optional

from pydantic import BaseModel, Field

from ..buttons import ButtonTemplate, ClickHandler, WorkflowButton
from ..contracts import WorkflowStepResult

if TYPE_CHECKING:
    from ..context import ExecutionContext
    from ..graph import StepGraph
    from ..history import DurationAnalytics
    from ..sequence import WorkflowStepSequence


def new_step_id() -> str:
    return uuid.uuid4().hex


class WorkflowStep(BaseModel, abc.ABC):
    """A node of the step graph.

    Edges are stored as step ids and resolved through the ``StepGraph`` of the
    owning workflow. Every concrete kind must declare its outgoing edges;
    ``execute`` defaults to waiting without a schedule change.
    """

    id: str = Field(default_factory=new_step_id)
    kind: str
    title: str
    icon_url: Optional[str] = None
    template_key: Optional[str] = None
    undo_button: Optional[ButtonTemplate] = None

    is_visible: ClassVar[bool] = True
    is_displaying_average_duration: ClassVar[bool] = False
    is_terminal: ClassVar[bool] = False

    # ------------------------------------------------------------------
    # Graph structure
    @abc.abstractmethod
    def possible_next_step_ids(self) -> List[Optional[str]]:
        """Return every outgoing edge, ``None`` for unconnected ones."""

    @abc.abstractmethod
    def replace_possible_next_step(self, old: Optional[str], new: Optional[str]) -> bool:
        """Point every edge equal to ``old`` at ``new``; report whether one matched."""

    def iter_branches(self) -> List["WorkflowStepSequence"]:
        return []

    # ------------------------------------------------------------------
    # Behaviour
    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        return WorkflowStepResult.wait()

    def cancel(self, ctx: "ExecutionContext") -> None:
        pass

    def reset(self, ctx: "ExecutionContext") -> None:
        pass

    # ------------------------------------------------------------------
    # Buttons
    def _button(
        self,
        role: str,
        template: ButtonTemplate,
        handler: Optional[ClickHandler] = None,
    ) -> WorkflowButton:
        return WorkflowButton(
            button_id=f"{self.id}:{role}",
            step_id=self.id,
            role=role,
            template=template,
            handler=handler,
        )

    def get_view_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return []

    def get_edit_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return []

    def find_button(
        self, ctx: "ExecutionContext", sender_id: str
    ) -> Optional[WorkflowButton]:
        for button in self.get_view_form_buttons(ctx):
            if button.button_id == sender_id:
                return button
        for button in self.get_edit_form_buttons(ctx):
            if button.button_id == sender_id:
                return button
        return None

    def button_click(
        self, ctx: "ExecutionContext", sender_id: str, prompt_input: Optional[str] = None
    ) -> Optional[WorkflowStepResult]:
        """Handle a click, returning ``None`` when no button of this step matches."""
        button = self.find_button(ctx, sender_id)
        if button is None:
            return None
        return button.handle_click(prompt_input)

    def has_direct_association_to(self, ctx: "ExecutionContext", sender_id: str) -> bool:
        return self.find_button(ctx, sender_id) is not None

    def find_leaf_sequence_of(
        self, ctx: "ExecutionContext", sender_id: str
    ) -> Optional["WorkflowStepSequence"]:
        return None

    # ------------------------------------------------------------------
    # Undo
    def get_undo_buttons(self) -> List[WorkflowButton]:
        if self.undo_button is None:
            return []
        return [self._button("undo", self.undo_button)]

    def get_undo_buttons_with_targets(self, graph: "StepGraph") -> List[WorkflowButton]:
        """Undo buttons of this step, each stamped to revert to this step."""
        return [button.with_target(self.id) for button in self.get_undo_buttons()]

    # ------------------------------------------------------------------
    # Presentation
    @property
    def duration_key(self) -> str:
        return self.template_key or self.kind

    def get_title(self) -> str:
        return self.title

    def get_icon_url(self) -> Optional[str]:
        return self.icon_url

    def get_average_duration(
        self, analytics: Optional["DurationAnalytics"]
    ) -> Optional[timedelta]:
        if analytics is None or not self.is_displaying_average_duration:
            return None
        return analytics.average_duration(self.duration_key)


class ActionStep(WorkflowStep):
    """A step with exactly one outgoing edge."""

    next_step_id: Optional[str] = None

    def possible_next_step_ids(self) -> List[Optional[str]]:
        return [self.next_step_id]

    def replace_possible_next_step(self, old: Optional[str], new: Optional[str]) -> bool:
        if self.next_step_id != old:
            return False
        self.next_step_id = new
        return True


class ChoiceStep(WorkflowStep):
    """A step with exactly two outgoing edges; subclasses pick one."""


class TrueFalseChoice(ChoiceStep):
    next_step_if_true: Optional[str] = None
    next_step_if_false: Optional[str] = None

    def possible_next_step_ids(self) -> List[Optional[str]]:
        return [self.next_step_if_true, self.next_step_if_false]

    def replace_possible_next_step(self, old: Optional[str], new: Optional[str]) -> bool:
        replaced = False
        if self.next_step_if_true == old:
            self.next_step_if_true = new
            replaced = True
        if self.next_step_if_false == old:
            self.next_step_if_false = new
            replaced = True
        return replaced

    def result_for(self, value: bool) -> WorkflowStepResult:
        if value:
            return WorkflowStepResult.advance(self.next_step_if_true)
        return WorkflowStepResult.advance(self.next_step_if_false)
