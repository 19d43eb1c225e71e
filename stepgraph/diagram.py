"""Layout of workflows as nested lanes for diagram pages."""

from __future__ import annotations

from datetime import timedelta
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .buttons import WorkflowButton
from .context import ExecutionContext
from .contracts import WorkflowStepStatus
from .errors import WorkflowError
from .history import DurationAnalytics
from .sequence import WorkflowStepSequence
from .steps import WorkflowStep
from .workflow import Workflow


class DiagramStep(BaseModel):
    element: Literal["step"] = "step"
    step_id: str
    kind: str
    title: str
    icon_url: Optional[str] = None
    status: WorkflowStepStatus
    average_duration: Optional[str] = None
    buttons: List[str] = Field(default_factory=list)
    undo_buttons: List[str] = Field(default_factory=list)
    history_count: int = 0


class DiagramGoTo(BaseModel):
    """Reference to a step that was already drawn further up."""

    element: Literal["goto"] = "goto"
    step_id: str
    title: str


class DiagramEnd(BaseModel):
    element: Literal["end"] = "end"
    title: str = "End"


class DiagramLanes(BaseModel):
    element: Literal["lanes"] = "lanes"
    lanes: List[List["DiagramElement"]] = Field(default_factory=list)


DiagramElement = Annotated[
    Union[DiagramStep, DiagramGoTo, DiagramEnd, DiagramLanes],
    Field(discriminator="element"),
]

DiagramLanes.model_rebuild()


def format_average_duration(duration: timedelta) -> str:
    if duration > timedelta(days=2):
        return f"avg. {duration // timedelta(days=1)} days"
    if duration > timedelta(hours=2):
        return f"avg. {duration // timedelta(hours=1)} hours"
    if duration > timedelta(minutes=2):
        return f"avg. {duration // timedelta(minutes=1)} minutes"
    return f"avg. {int(duration.total_seconds())} seconds"


class WorkflowDiagram:
    """Build a lane layout of a workflow.

    Choices split the current lane in two; both lanes are drawn until the
    closest step they share and the layout continues from there. When the
    lanes never meet, the bound last step of the sequence is used as the
    meeting point. Steps reached a second time are drawn as ``DiagramGoTo``.
    """

    def __init__(
        self,
        workflow: Workflow,
        ctx: Optional[ExecutionContext] = None,
        analytics: Optional[DurationAnalytics] = None,
    ) -> None:
        self.workflow = workflow
        self.graph = workflow.graph
        self.ctx = ctx or workflow.context()
        self.analytics = analytics
        self._rendered: set[str] = set()
        self._undo_buttons: List[WorkflowButton] = []

    def build(self) -> List[DiagramElement]:
        self._rendered = set()
        self._undo_buttons = self.workflow.get_undo_buttons()
        return self._render_chain(self.workflow, self.workflow.first_step_id, None)

    def _render_chain(
        self,
        sequence: WorkflowStepSequence,
        step_id: Optional[str],
        stop_id: Optional[str],
    ) -> List[DiagramElement]:
        elements: List[DiagramElement] = []
        while True:
            if step_id is not None and step_id == stop_id:
                return elements
            step = self.graph.get(step_id) if step_id is not None else None
            if step is None or step.is_terminal or step_id == sequence.last_step_id:
                elements.append(DiagramEnd())
                return elements
            if step_id in self._rendered:
                elements.append(DiagramGoTo(step_id=step_id, title=step.get_title()))
                return elements
            self._rendered.add(step_id)

            next_ids = step.possible_next_step_ids()
            branches = step.iter_branches()
            if branches:
                if len(next_ids) > 1:
                    raise WorkflowError(
                        f"Parallelism step {step_id} with more than one next step cannot be rendered."
                    )
                elements.append(self._step_element(sequence, step))
                elements.append(
                    DiagramLanes(
                        lanes=[
                            self._render_chain(branch, branch.first_step_id, None)
                            for branch in branches
                        ]
                    )
                )
                step_id = next_ids[0] if next_ids else None
                continue

            if len(next_ids) > 2:
                raise WorkflowError(
                    f"Rendering of workflow steps with {len(next_ids)} next steps is not supported yet."
                )
            if step.is_visible:
                elements.append(self._step_element(sequence, step))

            if len(next_ids) == 2:
                merge_id = self._find_merge_step(sequence, next_ids[0], next_ids[1])
                elements.append(
                    DiagramLanes(
                        lanes=[
                            self._render_chain(sequence, next_id, merge_id)
                            for next_id in next_ids
                        ]
                    )
                )
                if merge_id is None:
                    return elements
                step_id = merge_id
                continue

            step_id = next_ids[0] if next_ids else None

    def _find_merge_step(
        self, sequence: WorkflowStepSequence, left: Optional[str], right: Optional[str]
    ) -> Optional[str]:
        if left is None or right is None:
            return None
        common = self.graph.find_closest_common_next_step(left, right)
        if common.step_id is not None:
            return common.step_id
        if sequence.last_step_id is None:
            return None
        candidates = [
            self.graph.find_closest_common_next_step(origin, sequence.last_step_id)
            for origin in (left, right)
        ]
        candidates = [c for c in candidates if c.step_id is not None]
        if not candidates:
            return None
        return min(candidates, key=lambda c: c.distance).step_id

    def _step_element(self, sequence: WorkflowStepSequence, step: WorkflowStep) -> DiagramStep:
        status = sequence.get_status_of(self.graph, step.id)
        buttons: List[str] = []
        if status == WorkflowStepStatus.ACTIVE and not step.iter_branches():
            buttons = [
                button.title
                for button in step.get_view_form_buttons(self.ctx)
                if button.template.visible_on_diagram_pages
            ]
        average = step.get_average_duration(self.analytics)
        return DiagramStep(
            step_id=step.id,
            kind=step.kind,
            title=step.get_title(),
            icon_url=step.get_icon_url(),
            status=status,
            average_duration=format_average_duration(average) if average else None,
            buttons=buttons,
            undo_buttons=[
                button.title
                for button in self._undo_buttons
                if button.target_step_id == step.id
            ],
            history_count=len(self.workflow.find_history_items_for(self.graph, step.id)),
        )


def render_text(elements: List[DiagramElement], indent: int = 0) -> str:
    """Render a diagram as an indented outline."""
    pad = "  " * indent
    lines: List[str] = []
    for element in elements:
        if isinstance(element, DiagramStep):
            line = f"{pad}- {element.title or element.kind} [{element.status.value}]"
            if element.average_duration:
                line += f" ({element.average_duration})"
            if element.buttons:
                line += " {" + ", ".join(element.buttons) + "}"
            if element.undo_buttons:
                line += " <" + ", ".join(element.undo_buttons) + ">"
            lines.append(line)
        elif isinstance(element, DiagramGoTo):
            lines.append(f'{pad}- Go to "{element.title}"')
        elif isinstance(element, DiagramEnd):
            lines.append(f"{pad}- {element.title}")
        else:
            for number, lane in enumerate(element.lanes, start=1):
                lines.append(f"{pad}  | lane {number}")
                lines.append(render_text(lane, indent + 2))
    return "\n".join(line for line in lines if line)
