"""Steps that collect form input from users."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, Dict, List, Literal, Optional

from pydantic import Field

from ..buttons import ButtonTemplate, WorkflowButton
from ..contracts import WorkflowStepResult
from ..errors import BusinessRuleError, WorkflowError
from .base import ActionStep

if TYPE_CHECKING:
    from ..context import ExecutionContext
    from ..objects import WorkflowControlledObject


class FormAction(ActionStep):
    """Waits for a sub-form to be submitted.

    ``updated_form_data`` is filled by the form submission and cleared
    whenever the step is reset.
    """

    kind: Literal["form"] = "form"
    form_button: ButtonTemplate = Field(default_factory=lambda: ButtonTemplate(title="Edit"))
    required_fields: List[str] = Field(default_factory=list)
    updated_form_data: Optional[Dict[str, str]] = None

    is_displaying_average_duration: ClassVar[bool] = True

    def submit_form(self, data: Dict[str, str]) -> None:
        self.updated_form_data = dict(data)

    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        if self.updated_form_data is None:
            return WorkflowStepResult.wait()
        return WorkflowStepResult.advance(self.next_step_id)

    def reset(self, ctx: "ExecutionContext") -> None:
        self.updated_form_data = None

    def get_edit_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return [self._button("form", self.form_button)]


class WaitForDraftReleaseAction(FormAction):
    """Lets a submitted draft be released once its required fields are filled."""

    kind: Literal["wait_for_draft_release"] = "wait_for_draft_release"
    release_button: ButtonTemplate = Field(
        default_factory=lambda: ButtonTemplate(title="Release")
    )
    description: str = "Please click save to release the form."

    def is_valid(self, associated_object: "WorkflowControlledObject") -> bool:
        """Check the required fields of the associated object.

        Raises:
            WorkflowError: If the object has unsaved changes or was removed.
        """
        if associated_object.is_new or associated_object.is_changed:
            raise WorkflowError(
                "Validity of associated object cannot be checked because it has pending unsaved changes."
            )
        if associated_object.is_removed:
            raise WorkflowError(
                "Validity of associated object cannot be checked because it does not exist in persistence mechanism any more."
            )
        for key in self.required_fields:
            values = associated_object.find_field_values(key)
            if not values or not any(value.strip() for value in values):
                return False
        return True

    def _release(self, prompt_input: Optional[str]) -> WorkflowStepResult:
        if self.updated_form_data is None:
            raise BusinessRuleError(self.description)
        return WorkflowStepResult.advance(self.next_step_id)

    def get_view_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        if self.is_valid(ctx.require_object()):
            return [self._button("release", self.release_button, self._release)]
        return [self._button("form", self.form_button)]
