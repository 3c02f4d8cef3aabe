"""Work item model with its status state machine."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from kairos.errors import ValidationFailed


class WorkItemStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    SKIPPED = "skipped"
    ARCHIVED = "archived"


TERMINAL_STATUSES = frozenset(
    {WorkItemStatus.DONE, WorkItemStatus.SKIPPED, WorkItemStatus.ARCHIVED}
)
OPEN_STATUSES = frozenset({WorkItemStatus.TODO, WorkItemStatus.IN_PROGRESS})

# Valid status transitions
VALID_TRANSITIONS: dict[WorkItemStatus, set[WorkItemStatus]] = {
    WorkItemStatus.TODO: {
        WorkItemStatus.IN_PROGRESS,
        WorkItemStatus.DONE,
        WorkItemStatus.SKIPPED,
        WorkItemStatus.ARCHIVED,
    },
    WorkItemStatus.IN_PROGRESS: {
        WorkItemStatus.DONE,
        WorkItemStatus.SKIPPED,
        WorkItemStatus.ARCHIVED,
    },
    WorkItemStatus.DONE: {WorkItemStatus.ARCHIVED},
    WorkItemStatus.SKIPPED: {WorkItemStatus.ARCHIVED},
    WorkItemStatus.ARCHIVED: set(),
}


class WorkItem(BaseModel):
    """A schedulable unit of work.

    Session sizes of 0 mean "unset". Units are tracked when ``units_total > 0``.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    node_id: str
    title: str
    type: str = "task"
    status: WorkItemStatus = WorkItemStatus.TODO
    seq: int = 0

    planned_min: int = 0
    logged_min: int = 0

    min_session_min: int = 0
    max_session_min: int = 0
    default_session_min: int = 0
    splittable: bool = True

    units_kind: str = ""
    units_total: int = 0
    units_done: int = 0

    due_date: date | None = None
    not_before: date | None = None

    replanned_through: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> WorkItem:
        if self.logged_min < 0:
            raise ValueError("logged_min must be >= 0")
        if self.planned_min < 0:
            raise ValueError("planned_min must be >= 0")
        if self.units_total > 0 and self.units_done > self.units_total:
            raise ValueError("units_done must be <= units_total")
        if self.min_session_min and self.max_session_min:
            if self.min_session_min > self.max_session_min:
                raise ValueError("min_session_min must be <= max_session_min")
        return self

    # --- Derived values ---

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def tracks_units(self) -> bool:
        return self.units_total > 0

    @property
    def remaining_min(self) -> int:
        return max(0, self.planned_min - self.logged_min)

    @property
    def eligible_for_reestimate(self) -> bool:
        return not self.is_terminal and self.tracks_units and self.units_done > 0

    # --- State machine ---

    def transition(self, new_status: WorkItemStatus, now: datetime) -> None:
        """Move to ``new_status``, raising ValidationFailed if not allowed."""
        if new_status == self.status:
            return
        allowed = VALID_TRANSITIONS[self.status]
        if new_status not in allowed:
            raise ValidationFailed(
                f"Invalid status transition from '{self.status}' to '{new_status}'"
            )
        self.status = new_status
        if new_status is WorkItemStatus.DONE and self.completed_at is None:
            self.completed_at = now
        self.updated_at = now

    def mark_in_progress(self, now: datetime) -> None:
        self.transition(WorkItemStatus.IN_PROGRESS, now)

    def mark_done(self, now: datetime) -> None:
        self.transition(WorkItemStatus.DONE, now)

    def mark_skipped(self, now: datetime) -> None:
        self.transition(WorkItemStatus.SKIPPED, now)

    def archive(self, now: datetime) -> None:
        self.transition(WorkItemStatus.ARCHIVED, now)

    def apply_session(self, minutes: int, units_done_delta: int, now: datetime) -> None:
        """Fold a logged session into the item.

        A todo item moves to in_progress. Units are capped at ``units_total``.
        """
        if self.is_terminal:
            raise ValidationFailed(f"Cannot log a session against a {self.status} item")
        if self.status is WorkItemStatus.TODO:
            self.mark_in_progress(now)
        self.logged_min += minutes
        if self.tracks_units and units_done_delta:
            self.units_done = min(self.units_total, self.units_done + units_done_delta)
        self.updated_at = now

    def apply_reestimate(self, new_planned: int, now: datetime) -> bool:
        """Set a new planned estimate. Returns True if the value changed."""
        if new_planned == self.planned_min:
            return False
        self.planned_min = new_planned
        self.updated_at = now
        return True

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")
