"""Exception hierarchy for stepgraph."""

from __future__ import annotations


class StepgraphError(Exception):
    """Base class for all stepgraph errors."""


class WorkflowError(StepgraphError):
    """Raised for invalid templates, illegal transitions and broken preconditions.

    These errors point at a programming or modelling mistake and are never
    retried by the engine.
    """


class FieldNotFoundError(StepgraphError, KeyError):
    """Raised when a step reads a field the associated object does not have."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'Field with key "{key}" cannot be found on associated object.')

    def __str__(self) -> str:
        return self.args[0]


class BusinessRuleError(StepgraphError):
    """Raised by button handlers to reject a click with a user visible message."""


class ConcurrencyError(StepgraphError):
    """Raised when a workflow was modified by someone else since it was loaded."""
