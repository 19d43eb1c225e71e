"""Execution context handed to steps while a workflow is driven."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from .errors import WorkflowError

if TYPE_CHECKING:
    from .graph import StepGraph
    from .objects import WorkflowControlledObject


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExecutionContext:
    """Everything a step may consult during one drive of a workflow."""

    graph: "StepGraph"
    associated_object: Optional["WorkflowControlledObject"] = None
    now: datetime = field(default_factory=utcnow)
    passed_by: Optional[str] = None
    max_auto_advance: Optional[int] = None
    passed_steps: List[str] = field(default_factory=list)

    def require_object(self) -> "WorkflowControlledObject":
        if self.associated_object is None:
            raise WorkflowError("Workflow step requires an associated object.")
        return self.associated_object
