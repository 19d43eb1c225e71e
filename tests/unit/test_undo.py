"""Tests for undo buttons and setting workflows back."""

from datetime import datetime, timedelta, timezone

from stepgraph.buttons import ButtonTemplate
from stepgraph.history import HistoryAnalytics, HistoryTrigger
from stepgraph.sequence import WorkflowStepSequence
from stepgraph.steps import ParallelismAction, WaitForReleaseAction
from stepgraph.workflow import Workflow

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _review_workflow():
    review = WaitForReleaseAction(
        title="Review", undo_button=ButtonTemplate(title="Back to review")
    )
    approve = WaitForReleaseAction(title="Approve")
    workflow = Workflow.new("Invoice", [review, approve])
    workflow.drive(workflow.context(now=T0))
    return workflow, review, approve


def test_undo_button_is_offered_after_passing_its_step():
    workflow, review, approve = _review_workflow()
    assert workflow.get_undo_buttons() == []

    workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=1)), f"{review.id}:release"
    )

    buttons = workflow.get_undo_buttons()
    assert [button.button_id for button in buttons] == [f"{review.id}:undo"]
    assert buttons[0].target_step_id == review.id
    assert buttons[0].title == "Back to review"
    assert f"{review.id}:undo" in [
        button.button_id for button in workflow.get_view_form_buttons(workflow.context())
    ]


def test_clicking_undo_sets_workflow_back():
    workflow, review, approve = _review_workflow()
    workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=1)), f"{review.id}:release"
    )

    outcome = workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=2), passed_by="bob"),
        f"{review.id}:undo",
        "Missing receipt",
    )

    assert outcome.handled
    assert workflow.current_step_id == review.id
    assert len(workflow.history) == 3
    marker = workflow.history[-1]
    assert marker.step_id == review.id
    assert marker.trigger == HistoryTrigger.UNDO
    assert marker.comment == "Missing receipt"
    assert marker.passed_by == "bob"
    assert workflow.get_undo_buttons() == []


def test_history_grows_when_step_is_passed_again():
    workflow, review, approve = _review_workflow()
    workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=1)), f"{review.id}:release"
    )
    workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=2)), f"{review.id}:undo"
    )

    workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=5)), f"{review.id}:release"
    )

    assert workflow.current_step_id == approve.id
    assert len(workflow.history) == 4
    assert len(workflow.find_history_items_for(workflow.graph, review.id)) == 3
    assert len(workflow.get_undo_buttons()) == 1

    analytics = HistoryAnalytics.from_workflows([workflow])
    assert analytics.average_duration("wait_for_release") == timedelta(hours=2)


def test_undo_inside_parallel_branch():
    workflow = Workflow.new("Contract")
    legal = WaitForReleaseAction(
        title="Legal review", undo_button=ButtonTemplate(title="Back to legal")
    )
    signoff = WaitForReleaseAction(title="Legal sign-off")
    budget = WaitForReleaseAction(title="Budget check")
    first = WorkflowStepSequence.build(workflow.graph, [legal, signoff])
    second = WorkflowStepSequence.build(workflow.graph, [budget])
    parallel = ParallelismAction(branches=[first, second])
    workflow.append_steps([parallel])
    workflow.drive(workflow.context(now=T0))
    workflow.handle_button_click(workflow.context(now=T0), f"{legal.id}:release")
    assert first.current_step_id == signoff.id

    buttons = workflow.get_undo_buttons()
    assert [button.target_step_id for button in buttons] == [legal.id]

    outcome = workflow.handle_button_click(workflow.context(now=T0), f"{legal.id}:undo")

    assert outcome.handled
    assert workflow.current_step_id == parallel.id
    assert first.current_step_id == legal.id
    assert first.history[-1].trigger == HistoryTrigger.UNDO
    assert second.current_step_id == budget.id


def test_canceled_workflow_offers_no_undo():
    workflow, review, _ = _review_workflow()
    workflow.handle_button_click(workflow.context(now=T0), f"{review.id}:release")

    workflow.cancel(workflow.context(now=T0))

    assert workflow.get_undo_buttons() == []
