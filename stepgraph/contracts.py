"""Value types exchanged between steps, sequences and their drivers."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WaitForFieldValuesCondition(str, Enum):
    """How the field values of a ``WaitForFieldValuesAction`` are combined."""

    ALL_MUST_MATCH = "all_must_match"
    ALL_MUST_NOT_MATCH = "all_must_not_match"
    ONE_MUST_MATCH = "one_must_match"
    ONE_MUST_NOT_MATCH = "one_must_not_match"

    @property
    def is_one_must(self) -> bool:
        return self in (
            WaitForFieldValuesCondition.ONE_MUST_MATCH,
            WaitForFieldValuesCondition.ONE_MUST_NOT_MATCH,
        )

    @property
    def must_match(self) -> bool:
        return self in (
            WaitForFieldValuesCondition.ALL_MUST_MATCH,
            WaitForFieldValuesCondition.ONE_MUST_MATCH,
        )


class WorkflowStepStatus(str, Enum):
    INITIAL = "initial"
    ACTIVE = "active"
    COMPLETED = "completed"


class FieldValue(BaseModel):
    """A field key of the associated object and the value expected in it."""

    key: str
    value: str


class WorkflowStepResult(BaseModel):
    """Outcome of executing a step or clicking one of its buttons.

    ``advance`` moves the owning sequence to ``next_step_id`` (``None`` ends
    the sequence), ``wait`` leaves everything untouched and ``wait_until``
    asks to be executed again no earlier than ``not_before``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["advance", "wait", "wait_until"] = "wait"
    next_step_id: Optional[str] = None
    not_before: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_kind(self) -> "WorkflowStepResult":
        if self.kind == "wait_until" and self.not_before is None:
            raise ValueError("wait_until results require not_before")
        if self.kind != "wait_until" and self.not_before is not None:
            raise ValueError(f"{self.kind} results cannot carry not_before")
        if self.kind != "advance" and self.next_step_id is not None:
            raise ValueError(f"{self.kind} results cannot carry next_step_id")
        return self

    @classmethod
    def advance(cls, next_step_id: Optional[str]) -> "WorkflowStepResult":
        return cls(kind="advance", next_step_id=next_step_id)

    @classmethod
    def wait(cls) -> "WorkflowStepResult":
        return cls(kind="wait")

    @classmethod
    def wait_until(cls, not_before: datetime) -> "WorkflowStepResult":
        return cls(kind="wait_until", not_before=not_before)

    @property
    def is_execution_completed(self) -> bool:
        """``True`` when the step is done and the sequence should move on."""
        return self.kind == "advance"

    @property
    def changes_schedule(self) -> bool:
        return self.kind != "wait"


class DriveResult(BaseModel):
    """Summary of one drive of a workflow, returned to the caller."""

    workflow_id: str
    current_step_id: Optional[str] = None
    is_completed: bool = False
    is_canceled: bool = False
    auto_execution_schedule: datetime
    advanced_steps: List[str] = Field(default_factory=list)


class ButtonClickOutcome(BaseModel):
    """Result of routing a button click through a workflow."""

    handled: bool
    error_message: Optional[str] = None
    drive: Optional[DriveResult] = None
