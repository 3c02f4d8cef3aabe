"""Abstract repository interfaces consumed by the planning engines.

Repositories return plain dicts, engines wrap them into models. A missing
entity is reported as ``None``; storage failures raise
:class:`~kairos.errors.StorageError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any


class ProjectRepository(ABC):
    @abstractmethod
    async def insert_project(self, project: dict[str, Any]) -> dict[str, Any]:
        """Insert a project. Returns the inserted project."""

    @abstractmethod
    async def get_project(self, project_id: str) -> dict[str, Any] | None:
        """Get a project by ID."""

    @abstractmethod
    async def list_projects(self, *, include_archived: bool = False) -> list[dict[str, Any]]:
        """List projects ordered by name. Archived ones only on request."""


class PlanNodeRepository(ABC):
    @abstractmethod
    async def insert_node(self, node: dict[str, Any]) -> dict[str, Any]:
        """Insert a plan node. Returns the inserted node."""

    @abstractmethod
    async def get_node(self, node_id: str) -> dict[str, Any] | None:
        """Get a plan node by ID."""

    @abstractmethod
    async def list_nodes_by_project(self, project_id: str) -> list[dict[str, Any]]:
        """List all nodes of a project ordered by seq."""


class WorkItemRepository(ABC):
    @abstractmethod
    async def insert_work_item(self, item: dict[str, Any]) -> dict[str, Any]:
        """Insert a work item. Returns the inserted item."""

    @abstractmethod
    async def get_work_item(self, item_id: str) -> dict[str, Any] | None:
        """Get a work item by ID."""

    @abstractmethod
    async def list_work_items_by_project(self, project_id: str) -> list[dict[str, Any]]:
        """List every work item under any node of the project, ordered by seq."""

    @abstractmethod
    async def list_work_items_by_node(self, node_id: str) -> list[dict[str, Any]]:
        """List the work items directly under a node, ordered by seq."""

    @abstractmethod
    async def update_work_item(
        self, item_id: str, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Persist changed fields. Returns the updated item or None."""


class SessionRepository(ABC):
    @abstractmethod
    async def insert_session(self, session: dict[str, Any]) -> dict[str, Any]:
        """Append a session log."""

    @abstractmethod
    async def list_sessions_by_work_item(self, work_item_id: str) -> list[dict[str, Any]]:
        """List sessions of an item, oldest first."""

    @abstractmethod
    async def list_recent_sessions(self, days: int, *, now: datetime) -> list[dict[str, Any]]:
        """List sessions started within the last ``days`` days before ``now``."""


class DependencyRepository(ABC):
    @abstractmethod
    async def insert_dependency(self, dependency: dict[str, Any]) -> dict[str, Any]:
        """Insert a dependency edge."""

    @abstractmethod
    async def list_dependencies_for(self, successor_ids: list[str]) -> list[dict[str, Any]]:
        """List edges whose successor is one of ``successor_ids``."""


class UserProfileRepository(ABC):
    @abstractmethod
    async def get_profile(self) -> dict[str, Any] | None:
        """Get the user profile, or None when none was saved."""

    @abstractmethod
    async def upsert_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace the user profile."""


class PlannerStore(
    ProjectRepository,
    PlanNodeRepository,
    WorkItemRepository,
    SessionRepository,
    DependencyRepository,
    UserProfileRepository,
):
    """A backend implementing every repository the engines consume."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize schema and connections."""

    @abstractmethod
    async def close(self) -> None:
        """Close all connections."""


def parse_ts(value: Any) -> datetime:
    """Parse a stored timestamp into an aware datetime (naive means UTC)."""
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts
