"""stepgraph: persisted workflow step graphs and the engine that drives them."""

from .buttons import ButtonTemplate, WorkflowButton
from .context import ExecutionContext
from .contracts import (
    ButtonClickOutcome,
    DriveResult,
    FieldValue,
    WaitForFieldValuesCondition,
    WorkflowStepResult,
    WorkflowStepStatus,
)
from .diagram import WorkflowDiagram
from .errors import (
    BusinessRuleError,
    ConcurrencyError,
    FieldNotFoundError,
    StepgraphError,
    WorkflowError,
)
from .graph import StepGraph
from .history import HistoryAnalytics, HistoryItem
from .objects import BusinessObject
from .persistence import get_repository
from .scheduler import WorkflowScheduler
from .sequence import WorkflowStepSequence
from .steps import (
    FormAction,
    LastStep,
    ParallelismAction,
    PlaceholderAction,
    StartAction,
    TrueFalseButtonChoice,
    WaitForDraftReleaseAction,
    WaitForFieldValuesAction,
    WaitForReleaseAction,
    WaitUntilDateTimeAction,
)
from .workflow import Workflow

__version__ = "0.1.0"
__all__ = [
    "BusinessObject",
    "BusinessRuleError",
    "ButtonClickOutcome",
    "ButtonTemplate",
    "ConcurrencyError",
    "DriveResult",
    "ExecutionContext",
    "FieldNotFoundError",
    "FieldValue",
    "FormAction",
    "HistoryAnalytics",
    "HistoryItem",
    "LastStep",
    "ParallelismAction",
    "PlaceholderAction",
    "StartAction",
    "StepGraph",
    "StepgraphError",
    "TrueFalseButtonChoice",
    "WaitForDraftReleaseAction",
    "WaitForFieldValuesAction",
    "WaitForFieldValuesCondition",
    "WaitForReleaseAction",
    "WaitUntilDateTimeAction",
    "Workflow",
    "WorkflowButton",
    "WorkflowDiagram",
    "WorkflowError",
    "WorkflowScheduler",
    "WorkflowStepResult",
    "WorkflowStepSequence",
    "WorkflowStepStatus",
    "get_repository",
]
