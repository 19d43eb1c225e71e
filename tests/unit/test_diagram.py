"""Tests for the lane layout of workflow diagrams."""

from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

import pytest

from stepgraph.contracts import WorkflowStepStatus
from stepgraph.diagram import (
    DiagramEnd,
    DiagramGoTo,
    DiagramLanes,
    DiagramStep,
    WorkflowDiagram,
    format_average_duration,
    render_text,
)
from stepgraph.errors import WorkflowError
from stepgraph.history import HistoryAnalytics, HistoryItem
from stepgraph.sequence import WorkflowStepSequence
from stepgraph.steps import (
    ChoiceStep,
    FormAction,
    ParallelismAction,
    TrueFalseButtonChoice,
    WaitForReleaseAction,
)
from stepgraph.workflow import Workflow

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class ThreeWayChoice(ChoiceStep):
    kind: Literal["three_way"] = "three_way"
    first: Optional[str] = None
    second: Optional[str] = None
    third: Optional[str] = None

    def possible_next_step_ids(self) -> List[Optional[str]]:
        return [self.first, self.second, self.third]

    def replace_possible_next_step(self, old: Optional[str], new: Optional[str]) -> bool:
        return False


def _titles(elements):
    return [
        element.title if not isinstance(element, DiagramLanes) else [_titles(lane) for lane in element.lanes]
        for element in elements
    ]


def _converging_workflow():
    choice = TrueFalseButtonChoice(title="Approve?")
    workflow = Workflow.new("Review", [choice])
    merge = WaitForReleaseAction(title="Archive", next_step_id=workflow.last_step_id)
    left = WaitForReleaseAction(title="Pay", next_step_id=merge.id)
    right = WaitForReleaseAction(title="Reject", next_step_id=merge.id)
    for step in (merge, left, right):
        workflow.graph.add(step)
    choice.next_step_if_true = left.id
    choice.next_step_if_false = right.id
    return workflow, choice


def test_choice_lanes_meet_at_closest_common_step():
    workflow, _ = _converging_workflow()

    elements = WorkflowDiagram(workflow).build()

    assert _titles(elements) == ["Approve?", [["Pay"], ["Reject"]], "Archive", "End"]


def test_active_step_shows_its_buttons():
    workflow, choice = _converging_workflow()
    workflow.drive(workflow.context(now=T0))

    elements = WorkflowDiagram(workflow).build()

    first = elements[0]
    assert isinstance(first, DiagramStep)
    assert first.status == WorkflowStepStatus.ACTIVE
    assert first.buttons == ["Yes", "No"]
    assert "- Approve? [active] {Yes, No}" in render_text(elements)


def test_lanes_fall_back_to_last_step():
    choice = TrueFalseButtonChoice(title="Approve?")
    workflow = Workflow.new("Review", [choice])
    left = WaitForReleaseAction(title="Pay", next_step_id=workflow.last_step_id)
    right = WaitForReleaseAction(title="Escalate")
    workflow.graph.add(left)
    workflow.graph.add(right)
    choice.next_step_if_true = left.id
    choice.next_step_if_false = right.id

    elements = WorkflowDiagram(workflow).build()

    assert _titles(elements) == ["Approve?", [["Pay"], ["Escalate", "End"]], "End"]


def test_back_edge_is_drawn_as_go_to():
    review = WaitForReleaseAction(title="Review")
    choice = TrueFalseButtonChoice(title="Done?")
    workflow = Workflow.new("Loop", [review, choice])
    choice.next_step_if_false = review.id

    elements = WorkflowDiagram(workflow).build()

    lanes = elements[2]
    assert isinstance(lanes, DiagramLanes)
    assert lanes.lanes[0] == []
    assert lanes.lanes[1] == [DiagramGoTo(step_id=review.id, title="Review")]
    assert isinstance(elements[-1], DiagramEnd)


def test_parallel_branches_are_drawn_as_lanes():
    workflow = Workflow.new("Contract")
    branches = [
        WorkflowStepSequence.build(workflow.graph, [WaitForReleaseAction(title="Legal review")]),
        WorkflowStepSequence.build(workflow.graph, [WaitForReleaseAction(title="Budget check")]),
    ]
    workflow.append_steps([ParallelismAction(branches=branches), WaitForReleaseAction(title="Sign")])

    elements = WorkflowDiagram(workflow).build()

    assert _titles(elements) == [
        "",
        [["Legal review", "End"], ["Budget check", "End"]],
        "Sign",
        "End",
    ]


def test_more_than_two_next_steps_cannot_be_rendered():
    workflow = Workflow.new("Split", [ThreeWayChoice(title="Split")])

    with pytest.raises(WorkflowError, match="not supported yet"):
        WorkflowDiagram(workflow).build()


@pytest.mark.parametrize(
    "duration, label",
    [
        (timedelta(days=3), "avg. 3 days"),
        (timedelta(days=2), "avg. 48 hours"),
        (timedelta(hours=3), "avg. 3 hours"),
        (timedelta(minutes=5), "avg. 5 minutes"),
        (timedelta(seconds=90), "avg. 90 seconds"),
    ],
)
def test_format_average_duration(duration, label):
    assert format_average_duration(duration) == label


def test_average_duration_is_shown_for_form_steps():
    workflow = Workflow.new(
        "Form", [FormAction(title="Details"), WaitForReleaseAction(title="Review")]
    )
    analytics = HistoryAnalytics(
        [
            HistoryItem(step_id="x", step_type="form", entered_at=T0, passed_at=T0 + timedelta(hours=3)),
            HistoryItem(
                step_id="y",
                step_type="wait_for_release",
                entered_at=T0,
                passed_at=T0 + timedelta(hours=1),
            ),
        ]
    )

    elements = WorkflowDiagram(workflow, analytics=analytics).build()

    assert elements[0].average_duration == "avg. 3 hours"
    assert elements[1].average_duration is None
    assert "- Details [initial] (avg. 3 hours)" in render_text(elements)
