"""Example building an invoice approval workflow and driving it with the scheduler."""

import asyncio

from stepgraph import (
    BusinessObject,
    ButtonTemplate,
    FieldValue,
    TrueFalseButtonChoice,
    WaitForFieldValuesAction,
    WaitForReleaseAction,
    Workflow,
    WorkflowDiagram,
    WorkflowScheduler,
)
from stepgraph.diagram import render_text


async def main():
    invoice = BusinessObject(title="Invoice 42", fields={"status": "draft"})

    wait_for_submission = WaitForFieldValuesAction(
        title="Wait for submission",
        field_values=[FieldValue(key="status", value="submitted")],
    )
    review = WaitForReleaseAction(
        title="Review",
        release_button=ButtonTemplate(title="Reviewed", allowed_roles=["clerk"]),
        undo_button=ButtonTemplate(title="Back to review"),
    )
    approve = TrueFalseButtonChoice(title="Approve?")
    workflow = Workflow.new("Invoice approval", [wait_for_submission, review, approve])

    scheduler = WorkflowScheduler()
    await scheduler.register(workflow, invoice)
    await scheduler.drive(workflow.id)

    invoice.update_fields({"status": "submitted"})
    await scheduler.object_changed(invoice)
    await scheduler.click(workflow.id, f"{review.id}:release", passed_by="alice")

    stored = await scheduler.repository.get_workflow(workflow.id)
    print(render_text(WorkflowDiagram(stored, stored.context(associated_object=invoice)).build()))

    outcome = await scheduler.click(workflow.id, f"{approve.id}:true", passed_by="bob")
    print(f"Completed: {outcome.drive.is_completed}")


if __name__ == "__main__":
    asyncio.run(main())
