"""Work session log model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


class WorkSessionLog(BaseModel):
    """An append-only record of time (and optionally units) spent on an item."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    work_item_id: str
    started_at: datetime
    minutes: int = Field(gt=0)
    units_done_delta: int = Field(default=0, ge=0)
    note: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")
