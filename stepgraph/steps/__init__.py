"""Step kinds of the workflow graph."""

from __future__ import annotations

from typing import Annotated, Union

from pydantic import Field

from .actions import (
    LastStep,
    PlaceholderAction,
    StartAction,
    WaitForFieldValuesAction,
    WaitForReleaseAction,
    WaitUntilDateTimeAction,
)
from .base import ActionStep, ChoiceStep, TrueFalseChoice, WorkflowStep
from .choices import TrueFalseButtonChoice
from .forms import FormAction, WaitForDraftReleaseAction
from .parallelism import ParallelismAction

AnyStep = Annotated[
    Union[
        StartAction,
        PlaceholderAction,
        LastStep,
        WaitUntilDateTimeAction,
        WaitForReleaseAction,
        WaitForFieldValuesAction,
        FormAction,
        WaitForDraftReleaseAction,
        TrueFalseButtonChoice,
        ParallelismAction,
    ],
    Field(discriminator="kind"),
]

__all__ = [
    "ActionStep",
    "AnyStep",
    "ChoiceStep",
    "FormAction",
    "LastStep",
    "ParallelismAction",
    "PlaceholderAction",
    "StartAction",
    "TrueFalseButtonChoice",
    "TrueFalseChoice",
    "WaitForDraftReleaseAction",
    "WaitForFieldValuesAction",
    "WaitForReleaseAction",
    "WaitUntilDateTimeAction",
    "WorkflowStep",
]
