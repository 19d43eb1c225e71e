"""Step traversal history and the average durations derived from it."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from .workflow import Workflow


class HistoryTrigger(str, Enum):
    EXECUTION = "execution"
    BUTTON = "button"
    UNDO = "undo"


class HistoryItem(BaseModel):
    """One passed step. Items are appended when a step is exited and never change."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    step_type: str
    passed_by: Optional[str] = None
    entered_at: datetime
    passed_at: datetime
    trigger: HistoryTrigger = HistoryTrigger.EXECUTION
    comment: Optional[str] = None

    @property
    def duration(self) -> timedelta:
        return self.passed_at - self.entered_at


class DurationAnalytics(Protocol):
    def average_duration(self, step_type: str) -> Optional[timedelta]:
        """Average time spent in steps of ``step_type`` or ``None`` without data."""


class HistoryAnalytics:
    """In-memory duration analytics over a set of history items.

    Undo markers are not counted: they record a re-entry, not time spent.
    """

    def __init__(self, items: Iterable[HistoryItem] = ()) -> None:
        self._durations: Dict[str, List[timedelta]] = defaultdict(list)
        for item in items:
            self.add(item)

    def add(self, item: HistoryItem) -> None:
        if item.trigger == HistoryTrigger.UNDO:
            return
        self._durations[item.step_type].append(item.duration)

    @classmethod
    def from_workflows(cls, workflows: Iterable["Workflow"]) -> "HistoryAnalytics":
        analytics = cls()
        for workflow in workflows:
            for sequence in workflow.iter_sequences(workflow.graph):
                for item in sequence.history:
                    analytics.add(item)
        return analytics

    def average_duration(self, step_type: str) -> Optional[timedelta]:
        durations = self._durations.get(step_type)
        if not durations:
            return None
        return sum(durations, timedelta()) / len(durations)
