"""Project and plan node models."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ProjectStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    DONE = "done"
    ARCHIVED = "archived"


class NodeKind(StrEnum):
    WEEK = "week"
    MODULE = "module"
    BOOK = "book"
    STAGE = "stage"
    SECTION = "section"
    ASSESSMENT = "assessment"
    GENERIC = "generic"


class Project(BaseModel):
    """A tracked project with a start date and an optional deadline."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    short_id: str = ""
    name: str
    domain: str = ""
    start_date: date
    target_date: date | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    archived_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    @property
    def display_id(self) -> str:
        return self.short_id or self.id[:8]

    @property
    def is_schedulable(self) -> bool:
        return self.status is ProjectStatus.ACTIVE

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")


class PlanNode(BaseModel):
    """A structural level (week, module, ...) inside a project plan.

    Nodes only reference their parent; children are derived by the plan tree.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    project_id: str
    parent_id: str | None = None
    title: str = ""
    kind: NodeKind = NodeKind.GENERIC
    seq: int = 0
    is_default: bool = False
    due_date: date | None = None
    not_before: date | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")
