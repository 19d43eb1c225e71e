"""Command line interface for inspecting and driving stepgraph workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from pydantic import TypeAdapter, ValidationError

from stepgraph.config import load_config
from stepgraph.diagram import DiagramElement, WorkflowDiagram, format_average_duration, render_text
from stepgraph.errors import StepgraphError
from stepgraph.history import HistoryAnalytics
from stepgraph.objects import BusinessObject
from stepgraph.persistence import get_repository
from stepgraph.scheduler import WorkflowScheduler
from stepgraph.workflow import Workflow

app = typer.Typer(help="CLI for stepgraph workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level, e.g. INFO or DEBUG"
    ),
) -> None:
    """Stepgraph CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _scheduler() -> WorkflowScheduler:
    return WorkflowScheduler(repository=get_repository())


def _load(workflow_id: str) -> Workflow:
    workflow = asyncio.run(get_repository().get_workflow(workflow_id))
    if workflow is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    return workflow


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        _fail(f"Invalid timestamp: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflows with their status and next scheduled execution.

    Example:
        stepgraph workflow list
        # Output: 3f2a...    Approval    active    2024-01-01 10:00:00+00:00
    """
    workflows = asyncio.run(get_repository().list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.title}\t{wf.status}\t{wf.auto_execution_schedule}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show the active steps, available buttons and history of a workflow.

    Args:
        workflow_id: Workflow ID to inspect (get from 'workflow list')
    """
    repo = get_repository()
    wf = _load(workflow_id)
    associated_object = (
        asyncio.run(repo.get_object(wf.associated_object_id))
        if wf.associated_object_id
        else None
    )
    ctx = wf.context(associated_object=associated_object)

    typer.echo(f"Workflow {wf.id}: {wf.title} ({wf.status})")
    for key, value in wf.variables.items():
        typer.echo(f"Variable {key} = {value}")
    for step in wf.find_active_steps(wf.graph):
        if step.is_visible:
            typer.echo(f"Active: {step.get_title()} ({step.kind})")
    try:
        buttons = wf.get_view_form_buttons(ctx) + wf.get_edit_form_buttons(ctx)
    except StepgraphError as exc:
        typer.secho(f"Buttons unavailable: {exc}", fg=typer.colors.YELLOW)
        buttons = []
    for button in buttons:
        typer.echo(f"Button [{button.button_id}] {button.title}")
    for sequence in wf.iter_sequences(wf.graph):
        for item in sequence.history:
            step = wf.graph.find(item.step_id)
            title = step.get_title() if step is not None else item.step_id
            typer.echo(
                f"- {title or item.step_type}: {item.trigger.value}"
                f" by {item.passed_by or 'system'} ({item.entered_at} -> {item.passed_at})"
            )


@workflow_app.command("load")
def workflow_load(
    document: Path,
    object_document: Optional[Path] = typer.Option(
        None, "--object", help="JSON document of the associated business object"
    ),
) -> None:
    """
    Register a workflow from a JSON document.

    Example:
        stepgraph workflow load ./approval.json --object ./invoice.json
    """
    if not document.exists():
        _fail("Specified path does not exist")
    try:
        workflow = Workflow.model_validate_json(document.read_text())
        associated_object = (
            BusinessObject.model_validate_json(object_document.read_text())
            if object_document is not None
            else None
        )
    except ValidationError as exc:
        _fail(f"Invalid document: {exc}")
    try:
        asyncio.run(_scheduler().register(workflow, associated_object))
    except StepgraphError as exc:
        _fail(str(exc))
    typer.echo(f"Registered workflow {workflow.id}")


@workflow_app.command("run-due")
def workflow_run_due(
    now: Optional[str] = typer.Option(None, help="ISO timestamp to use as current time"),
) -> None:
    """Drive every workflow whose auto execution schedule is due."""
    results = asyncio.run(_scheduler().run_due(_parse_now(now)))
    typer.echo(f"Driven {len(results)} workflow(s)")
    for result in results:
        state = "completed" if result.is_completed else f"next run {result.auto_execution_schedule}"
        typer.echo(f"{result.workflow_id}\t{len(result.advanced_steps)} step(s)\t{state}")


@workflow_app.command("click")
def workflow_click(
    workflow_id: str,
    button_id: str,
    prompt: Optional[str] = typer.Option(None, help="Free text input for the button"),
    user: Optional[str] = typer.Option(None, help="User clicking the button"),
) -> None:
    """
    Click a button offered by a workflow.

    Example:
        stepgraph workflow click 3f2a... 9b1c...:release --user alice
    """
    _load(workflow_id)
    try:
        outcome = asyncio.run(_scheduler().click(workflow_id, button_id, prompt, user))
    except StepgraphError as exc:
        _fail(str(exc))
    if not outcome.handled:
        _fail(outcome.error_message or "Button was not handled")
    typer.echo(f"Button {button_id} handled")
    if outcome.drive is not None and outcome.drive.is_completed:
        typer.echo("Workflow completed")


@workflow_app.command("submit")
def workflow_submit(
    workflow_id: str,
    step_id: str,
    data: str = typer.Option("{}", help="JSON object with the submitted form fields"),
    user: Optional[str] = typer.Option(None, help="User submitting the form"),
) -> None:
    """Submit form data for an active form step."""
    _load(workflow_id)
    try:
        values = json.loads(data)
    except json.JSONDecodeError as exc:
        _fail(f"Invalid form data: {exc}")
    try:
        asyncio.run(_scheduler().submit_form(workflow_id, step_id, values, user))
    except StepgraphError as exc:
        _fail(str(exc))
    typer.echo(f"Form of step {step_id} submitted")


@workflow_app.command("cancel")
def workflow_cancel(
    workflow_id: str,
    user: Optional[str] = typer.Option(None, help="User canceling the workflow"),
) -> None:
    """Cancel a workflow and all of its active branches."""
    _load(workflow_id)
    try:
        asyncio.run(_scheduler().cancel(workflow_id, user))
    except StepgraphError as exc:
        _fail(str(exc))
    typer.echo(f"Workflow {workflow_id} canceled")


@workflow_app.command("diagram")
def workflow_diagram(
    workflow_id: str,
    as_json: bool = typer.Option(False, "--json", help="Print the layout as JSON"),
) -> None:
    """Print the lane layout of a workflow."""
    repo = get_repository()
    wf = _load(workflow_id)
    associated_object = (
        asyncio.run(repo.get_object(wf.associated_object_id))
        if wf.associated_object_id
        else None
    )
    analytics = HistoryAnalytics.from_workflows(asyncio.run(repo.list_workflows()))
    try:
        elements = WorkflowDiagram(
            wf, wf.context(associated_object=associated_object), analytics
        ).build()
    except StepgraphError as exc:
        _fail(str(exc))
    if as_json:
        adapter = TypeAdapter(List[DiagramElement])
        typer.echo(adapter.dump_json(elements, indent=2).decode())
    else:
        typer.echo(render_text(elements))


@workflow_app.command("stats")
def workflow_stats(step_type: str) -> None:
    """Show the average time spent in steps of a type (or template key)."""
    average = asyncio.run(get_repository().average_duration(step_type))
    if average is None:
        typer.echo(f"No history for {step_type}")
        return
    typer.echo(f"{step_type}: {format_average_duration(average)}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
