"""Choice steps resolved by button clicks."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Literal, Optional

from pydantic import Field

from ..buttons import ButtonTemplate, WorkflowButton
from ..contracts import WorkflowStepResult
from .base import TrueFalseChoice

if TYPE_CHECKING:
    from ..context import ExecutionContext


class TrueFalseButtonChoice(TrueFalseChoice):
    """Offers a true and a false button, each taking its own edge."""

    kind: Literal["true_false_button_choice"] = "true_false_button_choice"
    true_button: ButtonTemplate = Field(default_factory=lambda: ButtonTemplate(title="Yes"))
    false_button: ButtonTemplate = Field(default_factory=lambda: ButtonTemplate(title="No"))

    def _on_true(self, prompt_input: Optional[str]) -> WorkflowStepResult:
        return self.result_for(True)

    def _on_false(self, prompt_input: Optional[str]) -> WorkflowStepResult:
        return self.result_for(False)

    def get_view_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return [
            self._button("true", self.true_button, self._on_true),
            self._button("false", self.false_button, self._on_false),
        ]
