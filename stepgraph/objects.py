"""Business objects whose life cycle is controlled by a workflow."""

from __future__ import annotations

import uuid
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field

FieldContent = Union[str, List[str], None]


@runtime_checkable
class WorkflowControlledObject(Protocol):
    """What the engine needs to know about the object a workflow belongs to."""

    id: str
    is_new: bool
    is_changed: bool
    is_removed: bool

    def find_field_values(self, key: str) -> Optional[List[str]]:
        """Return the string values of field ``key`` or ``None`` if it does not exist."""

    def get_title(self) -> str:
        """Title used when rendering the object."""


class BusinessObject(BaseModel):
    """Plain field bag implementing ``WorkflowControlledObject``."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = ""
    fields: Dict[str, FieldContent] = Field(default_factory=dict)
    is_new: bool = False
    is_changed: bool = False
    is_removed: bool = False

    def find_field_values(self, key: str) -> Optional[List[str]]:
        if key not in self.fields:
            return None
        value = self.fields[key]
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def update_fields(self, values: Dict[str, FieldContent]) -> None:
        """Apply submitted form data and flag the object as changed."""
        self.fields.update(values)
        self.is_changed = True

    def mark_saved(self) -> None:
        self.is_new = False
        self.is_changed = False

    def get_title(self) -> str:
        return self.title or self.id
