"""Dependency edge model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class EntityType(StrEnum):
    NODE = "node"
    WORK_ITEM = "work_item"


class Dependency(BaseModel):
    """The successor stays ineligible until the predecessor is complete."""

    predecessor_type: EntityType = EntityType.WORK_ITEM
    predecessor_id: str
    successor_type: EntityType = EntityType.WORK_ITEM
    successor_id: str

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")
