from datetime import datetime, timedelta, timezone

import pytest

from stepgraph.buttons import ButtonTemplate
from stepgraph.errors import ConcurrencyError, WorkflowError
from stepgraph.objects import BusinessObject
from stepgraph.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository
from stepgraph.sequence import WorkflowStepSequence
from stepgraph.steps import (
    FormAction,
    ParallelismAction,
    TrueFalseButtonChoice,
    WaitForReleaseAction,
    WaitUntilDateTimeAction,
)
from stepgraph.workflow import Workflow

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryWorkflowRepository()
    return SQLiteWorkflowRepository(tmp_path / "wf.db")


def _timer_workflow(title, not_before):
    workflow = Workflow.new(title, [WaitUntilDateTimeAction(title="Wait", not_before=not_before)])
    workflow.drive(workflow.context(now=T0))
    return workflow


@pytest.mark.asyncio
async def test_repository_round_trips_every_step_kind(repo):
    workflow = Workflow.new("Contract")
    branch = WorkflowStepSequence.build(workflow.graph, [FormAction(title="Details")])
    choice = TrueFalseButtonChoice(title="Approve?", undo_button=ButtonTemplate(title="Back"))
    workflow.append_steps(
        [ParallelismAction(branches=[branch]), WaitForReleaseAction(title="Sign"), choice]
    )
    workflow.drive(workflow.context(now=T0))

    await repo.create_workflow(workflow)
    loaded = await repo.get_workflow(workflow.id)

    assert loaded is not None
    assert loaded.model_dump() == workflow.model_dump()
    assert isinstance(loaded.graph.get(choice.id), TrueFalseButtonChoice)
    assert loaded.graph.get(choice.id).undo_button.title == "Back"
    assert await repo.get_workflow("missing") is None


@pytest.mark.asyncio
async def test_save_increments_version_and_detects_conflicts(repo):
    workflow = _timer_workflow("Timer", T0 + timedelta(days=1))
    await repo.create_workflow(workflow)

    first = await repo.get_workflow(workflow.id)
    second = await repo.get_workflow(workflow.id)
    await repo.save_workflow(first)
    assert first.version == 1

    with pytest.raises(ConcurrencyError):
        await repo.save_workflow(second)
    assert second.version == 0
    assert (await repo.get_workflow(workflow.id)).version == 1


@pytest.mark.asyncio
async def test_duplicate_create_and_unknown_save_raise(repo):
    workflow = Workflow.new("Once")
    await repo.create_workflow(workflow)

    with pytest.raises(WorkflowError):
        await repo.create_workflow(workflow)
    with pytest.raises(WorkflowError):
        await repo.save_workflow(Workflow.new("Never created"))


@pytest.mark.asyncio
async def test_find_due_workflows_orders_by_schedule(repo):
    later = _timer_workflow("Later", T0 + timedelta(days=2))
    sooner = _timer_workflow("Sooner", T0 + timedelta(days=1))
    future = _timer_workflow("Future", T0 + timedelta(days=9))
    done = Workflow.new("Done")
    done.drive(done.context(now=T0))
    for workflow in (later, sooner, future, done):
        await repo.create_workflow(workflow)

    due = await repo.find_due_workflows(T0 + timedelta(days=3))

    assert [workflow.title for workflow in due] == ["Sooner", "Later"]
    assert len(await repo.list_workflows()) == 4


@pytest.mark.asyncio
async def test_average_duration_from_history(repo):
    review = WaitForReleaseAction(title="Review")
    workflow = Workflow.new("Review", [review])
    workflow.drive(workflow.context(now=T0))
    await repo.create_workflow(workflow)

    workflow.handle_button_click(
        workflow.context(now=T0 + timedelta(hours=2)), f"{review.id}:release"
    )
    await repo.save_workflow(workflow)

    assert await repo.average_duration("wait_for_release") == timedelta(hours=2)
    assert await repo.average_duration("form") is None


@pytest.mark.asyncio
async def test_objects_and_workflows_for_object(repo):
    invoice = BusinessObject(title="Invoice 42", fields={"status": "draft", "tags": ["a", "b"]})
    await repo.save_object(invoice)
    workflow = Workflow.new(
        "Invoice", [WaitForReleaseAction(title="Review")], associated_object_id=invoice.id
    )
    await repo.create_workflow(workflow)
    await repo.create_workflow(Workflow.new("Unrelated"))

    assert await repo.get_object(invoice.id) == invoice
    assert await repo.get_object("missing") is None
    assert [wf.id for wf in await repo.find_workflows_for_object(invoice.id)] == [workflow.id]
