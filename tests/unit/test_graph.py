"""Tests for the step graph arena and its traversals."""

import pytest

from stepgraph.constants import NO_DISTANCE
from stepgraph.errors import WorkflowError
from stepgraph.graph import StepGraph
from stepgraph.steps import (
    PlaceholderAction,
    StartAction,
    TrueFalseButtonChoice,
    WaitForReleaseAction,
)
from stepgraph.workflow import Workflow


def _graph_with(*steps):
    graph = StepGraph()
    for step in steps:
        graph.add(step)
    return graph


def _diamond():
    merge = WaitForReleaseAction(title="Merge")
    left = WaitForReleaseAction(title="Left", next_step_id=merge.id)
    right = WaitForReleaseAction(title="Right", next_step_id=merge.id)
    choice = TrueFalseButtonChoice(
        title="Start", next_step_if_true=left.id, next_step_if_false=right.id
    )
    return _graph_with(choice, left, right, merge), choice, left, right, merge


def test_closest_common_next_step_of_converging_branches():
    graph, _, left, right, merge = _diamond()

    assert graph.find_closest_common_next_step(left.id, right.id) == (merge.id, 1)


def test_closest_common_next_step_direct_hits():
    graph, _, left, right, merge = _diamond()

    assert graph.find_closest_common_next_step(merge.id, left.id) == (merge.id, 0)
    assert graph.find_closest_common_next_step(left.id, left.id) == (left.id, 0)


def test_closest_common_next_step_terminates_on_cycles():
    a = PlaceholderAction()
    b = PlaceholderAction()
    isolated = WaitForReleaseAction(title="Isolated")
    a.next_step_id = b.id
    b.next_step_id = a.id
    graph = _graph_with(a, b, isolated)

    result = graph.find_closest_common_next_step(a.id, isolated.id)

    assert result.step_id is None
    assert result.distance == NO_DISTANCE


def test_closest_common_next_step_through_a_cycle():
    merge = WaitForReleaseAction(title="Merge")
    a = PlaceholderAction()
    loop = TrueFalseButtonChoice(title="Loop", next_step_if_true=a.id, next_step_if_false=merge.id)
    a.next_step_id = loop.id
    other = WaitForReleaseAction(title="Other", next_step_id=merge.id)
    graph = _graph_with(a, loop, merge, other)

    assert graph.find_closest_common_next_step(a.id, other.id) == (merge.id, 2)


def test_is_successor_of():
    c = WaitForReleaseAction(title="C")
    b = WaitForReleaseAction(title="B", next_step_id=c.id)
    a = WaitForReleaseAction(title="A", next_step_id=b.id)
    graph = _graph_with(a, b, c)

    assert graph.is_successor_of(c.id, a.id)
    assert not graph.is_successor_of(a.id, c.id)
    assert not graph.is_successor_of(a.id, a.id)
    assert graph.is_direct_predecessor_of(a.id, b.id)
    assert not graph.is_direct_predecessor_of(a.id, c.id)
    assert graph.is_direct_predecessor_of(a.id, None)


def test_replace_possible_next_step_updates_both_edges():
    old = WaitForReleaseAction(title="Old")
    new = WaitForReleaseAction(title="New")
    choice = TrueFalseButtonChoice(
        title="Choice", next_step_if_true=old.id, next_step_if_false=old.id
    )

    assert choice.replace_possible_next_step(old.id, new.id) is True
    assert choice.next_step_if_true == new.id
    assert choice.next_step_if_false == new.id
    assert choice.replace_possible_next_step(old.id, new.id) is False


def test_graph_replace_rewires_every_reference():
    target = WaitForReleaseAction(title="Target")
    replacement = WaitForReleaseAction(title="Replacement")
    first = WaitForReleaseAction(title="First", next_step_id=target.id)
    choice = TrueFalseButtonChoice(title="Choice", next_step_if_true=target.id)
    graph = _graph_with(target, replacement, first, choice)

    assert graph.replace_possible_next_step(target.id, replacement.id)
    assert first.next_step_id == replacement.id
    assert choice.next_step_if_true == replacement.id
    assert choice.next_step_if_false is None
    assert graph.predecessors_of(target.id) == []


def test_get_unknown_step_raises():
    with pytest.raises(WorkflowError):
        StepGraph().get("missing")


def test_adding_a_step_twice_raises():
    step = WaitForReleaseAction(title="Once")
    graph = _graph_with(step)
    with pytest.raises(WorkflowError):
        graph.add(step)


def test_add_step_after_choice_raises():
    choice = TrueFalseButtonChoice(title="Choice")
    start = StartAction(next_step_id=choice.id)
    graph = _graph_with(start, choice)

    with pytest.raises(WorkflowError, match="TrueFalseButtonChoice"):
        graph.add_step_after_last_steps(start.id, WaitForReleaseAction(title="After"))


def test_add_step_after_all_last_steps():
    left = WaitForReleaseAction(title="Left")
    right = WaitForReleaseAction(title="Right")
    choice = TrueFalseButtonChoice(
        title="Choice", next_step_if_true=left.id, next_step_if_false=right.id
    )
    start = StartAction(next_step_id=choice.id)
    graph = _graph_with(start, choice, left, right)
    joined = WaitForReleaseAction(title="Joined")

    graph.add_step_after_last_steps(start.id, joined)

    assert joined.id in graph
    assert left.next_step_id == joined.id
    assert right.next_step_id == joined.id
    assert joined.next_step_id is None


def test_remove_step_sweeps_unreachable_steps():
    c = WaitForReleaseAction(title="C")
    b = WaitForReleaseAction(title="B", next_step_id=c.id)
    a = WaitForReleaseAction(title="A", next_step_id=b.id)
    start = StartAction(next_step_id=a.id)
    graph = _graph_with(start, a, b, c)

    removed = graph.remove_step(b.id, roots=[start.id])

    assert removed == [b.id, c.id]
    assert a.next_step_id is None
    assert set(graph.steps) == {start.id, a.id}


def test_remove_step_with_reconnect_keeps_the_tail():
    c = WaitForReleaseAction(title="C")
    b = WaitForReleaseAction(title="B", next_step_id=c.id)
    a = WaitForReleaseAction(title="A", next_step_id=b.id)
    start = StartAction(next_step_id=a.id)
    graph = _graph_with(start, a, b, c)

    removed = graph.remove_step(b.id, roots=[start.id], reconnect=True)

    assert removed == [b.id]
    assert a.next_step_id == c.id


def test_remove_choice_with_reconnect_raises():
    graph, choice, *_ = _diamond()
    with pytest.raises(WorkflowError):
        graph.remove_step(choice.id, roots=[choice.id], reconnect=True)


def test_terminal_step_is_reachable_from_every_step():
    choice = TrueFalseButtonChoice(title="Decide")
    workflow = Workflow.new(
        "Approval", [WaitForReleaseAction(title="Review"), PlaceholderAction(), choice]
    )
    graph = workflow.graph

    for step in graph.steps.values():
        if step.is_terminal:
            continue
        for branch_index in range(len(step.possible_next_step_ids())):
            current = step
            next_id = current.possible_next_step_ids()[branch_index]
            for _ in range(len(graph)):
                current = graph.get(next_id)
                if not current.possible_next_step_ids():
                    break
                next_id = current.possible_next_step_ids()[0]
            assert current.possible_next_step_ids() == []
            assert current.is_terminal
