"""Buttons offered by workflow steps to the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from .contracts import WorkflowStepResult
from .errors import BusinessRuleError

ClickHandler = Callable[[Optional[str]], WorkflowStepResult]


class ButtonTemplate(BaseModel):
    """Persisted configuration of a button declared by a step."""

    title: str
    confirmation_message: Optional[str] = None
    allowed_roles: List[str] = Field(default_factory=list)
    requires_prompt: bool = False
    visible_on_form_pages: bool = True
    visible_on_diagram_pages: bool = True


@dataclass
class WorkflowButton:
    """A concrete, clickable button bound to the step that offers it.

    Buttons without a handler are client side (they open a form, for example)
    and produce a plain wait result when clicked.
    """

    button_id: str
    step_id: str
    role: str
    template: ButtonTemplate
    handler: Optional[ClickHandler] = field(default=None, repr=False, compare=False)
    target_step_id: Optional[str] = None

    @property
    def title(self) -> str:
        return self.template.title

    @property
    def is_undo(self) -> bool:
        return self.target_step_id is not None

    def with_target(self, target_step_id: str) -> "WorkflowButton":
        return replace(self, target_step_id=target_step_id)

    def handle_click(self, prompt_input: Optional[str] = None) -> WorkflowStepResult:
        if self.template.requires_prompt and not (prompt_input or "").strip():
            raise BusinessRuleError(f'Button "{self.title}" requires an input.')
        if self.handler is None:
            return WorkflowStepResult.wait()
        return self.handler(prompt_input)
