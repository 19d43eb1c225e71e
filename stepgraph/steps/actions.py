"""Action steps: structural steps, timers, releases and field-value waits."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, ClassVar, List, Literal, Optional

from pydantic import Field

from ..buttons import ButtonTemplate, WorkflowButton
from ..contracts import FieldValue, WaitForFieldValuesCondition, WorkflowStepResult
from ..errors import FieldNotFoundError
from .base import ActionStep, WorkflowStep

if TYPE_CHECKING:
    from ..context import ExecutionContext

logger = logging.getLogger(__name__)


class StartAction(ActionStep):
    """First step of every sequence. Moves on immediately."""

    kind: Literal["start"] = "start"
    title: str = ""

    is_visible: ClassVar[bool] = False

    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        return WorkflowStepResult.advance(self.next_step_id)


class PlaceholderAction(ActionStep):
    """Invisible step used as a join point or stand-in while authoring templates."""

    kind: Literal["placeholder"] = "placeholder"
    title: str = ""

    is_visible: ClassVar[bool] = False

    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        return WorkflowStepResult.advance(self.next_step_id)


class LastStep(WorkflowStep):
    """Terminal step of a sequence.

    Entering it completes the sequence. Its ``execute`` runs once as the
    completion hook when the sequence completes or is canceled.
    """

    kind: Literal["last"] = "last"
    title: str = ""

    is_visible: ClassVar[bool] = False
    is_terminal: ClassVar[bool] = True

    def possible_next_step_ids(self) -> List[Optional[str]]:
        return []

    def replace_possible_next_step(self, old: Optional[str], new: Optional[str]) -> bool:
        return False


class WaitUntilDateTimeAction(ActionStep):
    kind: Literal["wait_until_date_time"] = "wait_until_date_time"
    not_before: datetime

    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        if ctx.now >= self.not_before:
            return WorkflowStepResult.advance(self.next_step_id)
        return WorkflowStepResult.wait_until(self.not_before)


class WaitForReleaseAction(ActionStep):
    """Waits until someone clicks its release button."""

    kind: Literal["wait_for_release"] = "wait_for_release"
    release_button: ButtonTemplate = Field(
        default_factory=lambda: ButtonTemplate(title="Release")
    )

    def _release(self, prompt_input: Optional[str]) -> WorkflowStepResult:
        return WorkflowStepResult.advance(self.next_step_id)

    def get_view_form_buttons(self, ctx: "ExecutionContext") -> List[WorkflowButton]:
        return [self._button("release", self.release_button, self._release)]


class WaitForFieldValuesAction(ActionStep):
    """Waits until fields of the associated object hold the expected values.

    One-must conditions start out waiting and advance on the first field that
    qualifies; all-must conditions start out advancing and wait on the first
    field that disqualifies. Remaining fields are not read in either case.
    """

    kind: Literal["wait_for_field_values"] = "wait_for_field_values"
    condition: WaitForFieldValuesCondition = WaitForFieldValuesCondition.ALL_MUST_MATCH
    field_values: List[FieldValue] = Field(default_factory=list)
    ignore_missing_fields: bool = False

    is_displaying_average_duration: ClassVar[bool] = True

    def execute(self, ctx: "ExecutionContext") -> WorkflowStepResult:
        associated_object = ctx.require_object()
        one_must = self.condition.is_one_must
        must_match = self.condition.must_match

        if one_must:
            result = WorkflowStepResult.wait()
        else:
            result = WorkflowStepResult.advance(self.next_step_id)

        for field_value in self.field_values:
            values = associated_object.find_field_values(field_value.key)
            if values is None:
                if self.ignore_missing_fields:
                    continue
                raise FieldNotFoundError(field_value.key)
            matches = field_value.value in values
            if one_must and matches == must_match:
                result = WorkflowStepResult.advance(self.next_step_id)
                break
            if not one_must and matches != must_match:
                result = WorkflowStepResult.wait()
                break

        logger.debug(
            f"Field condition {self.condition.value} of step {self.id} evaluated to {result.kind}"
        )
        return result
