"""In-memory storage backend.

Holds the same dict shapes as the SQLite store. Useful for tests and for
callers that already hold a snapshot and only want the engines.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta
from typing import Any

from kairos.storage.base import PlannerStore, parse_ts

logger = logging.getLogger(__name__)

_UPDATABLE_ITEM_FIELDS = {
    "title",
    "type",
    "status",
    "seq",
    "planned_min",
    "logged_min",
    "min_session_min",
    "max_session_min",
    "default_session_min",
    "splittable",
    "units_kind",
    "units_total",
    "units_done",
    "due_date",
    "not_before",
    "replanned_through",
    "completed_at",
    "updated_at",
}


class MemoryStore(PlannerStore):
    """Dict-backed store. Every read returns a copy."""

    def __init__(self) -> None:
        self._projects: dict[str, dict[str, Any]] = {}
        self._nodes: dict[str, dict[str, Any]] = {}
        self._items: dict[str, dict[str, Any]] = {}
        self._sessions: list[dict[str, Any]] = []
        self._dependencies: list[dict[str, Any]] = []
        self._profile: dict[str, Any] | None = None

    async def initialize(self) -> None:
        logger.debug("Initialized in-memory store")

    async def close(self) -> None:
        pass

    # --- Projects ---

    async def insert_project(self, project: dict[str, Any]) -> dict[str, Any]:
        self._projects[project["id"]] = copy.deepcopy(project)
        return project

    async def get_project(self, project_id: str) -> dict[str, Any] | None:
        data = self._projects.get(project_id)
        return copy.deepcopy(data) if data else None

    async def list_projects(self, *, include_archived: bool = False) -> list[dict[str, Any]]:
        projects = [
            copy.deepcopy(p)
            for p in self._projects.values()
            if include_archived or p.get("status") != "archived"
        ]
        return sorted(projects, key=lambda p: (p["name"], p["id"]))

    # --- Plan nodes ---

    async def insert_node(self, node: dict[str, Any]) -> dict[str, Any]:
        self._nodes[node["id"]] = copy.deepcopy(node)
        return node

    async def get_node(self, node_id: str) -> dict[str, Any] | None:
        data = self._nodes.get(node_id)
        return copy.deepcopy(data) if data else None

    async def list_nodes_by_project(self, project_id: str) -> list[dict[str, Any]]:
        nodes = [copy.deepcopy(n) for n in self._nodes.values() if n["project_id"] == project_id]
        return sorted(nodes, key=lambda n: (n.get("seq", 0), n["id"]))

    # --- Work items ---

    async def insert_work_item(self, item: dict[str, Any]) -> dict[str, Any]:
        self._items[item["id"]] = copy.deepcopy(item)
        return item

    async def get_work_item(self, item_id: str) -> dict[str, Any] | None:
        data = self._items.get(item_id)
        return copy.deepcopy(data) if data else None

    async def list_work_items_by_project(self, project_id: str) -> list[dict[str, Any]]:
        node_ids = {n["id"] for n in self._nodes.values() if n["project_id"] == project_id}
        items = [copy.deepcopy(i) for i in self._items.values() if i["node_id"] in node_ids]
        return sorted(items, key=lambda i: (i.get("seq", 0), i["id"]))

    async def list_work_items_by_node(self, node_id: str) -> list[dict[str, Any]]:
        items = [copy.deepcopy(i) for i in self._items.values() if i["node_id"] == node_id]
        return sorted(items, key=lambda i: (i.get("seq", 0), i["id"]))

    async def update_work_item(
        self, item_id: str, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        current = self._items.get(item_id)
        if current is None:
            return None
        rejected = set(updates) - _UPDATABLE_ITEM_FIELDS - {"id"}
        if rejected:
            logger.warning("Rejected invalid work item fields: %s", rejected)
        current.update({k: v for k, v in updates.items() if k in _UPDATABLE_ITEM_FIELDS})
        return copy.deepcopy(current)

    # --- Sessions ---

    async def insert_session(self, session: dict[str, Any]) -> dict[str, Any]:
        self._sessions.append(copy.deepcopy(session))
        return session

    async def list_sessions_by_work_item(self, work_item_id: str) -> list[dict[str, Any]]:
        sessions = [copy.deepcopy(s) for s in self._sessions if s["work_item_id"] == work_item_id]
        return sorted(sessions, key=lambda s: parse_ts(s["started_at"]))

    async def list_recent_sessions(self, days: int, *, now: datetime) -> list[dict[str, Any]]:
        cutoff = parse_ts(now) - timedelta(days=days)
        return [
            copy.deepcopy(s)
            for s in self._sessions
            if cutoff <= parse_ts(s["started_at"]) <= parse_ts(now)
        ]

    # --- Dependencies ---

    async def insert_dependency(self, dependency: dict[str, Any]) -> dict[str, Any]:
        self._dependencies.append(copy.deepcopy(dependency))
        return dependency

    async def list_dependencies_for(self, successor_ids: list[str]) -> list[dict[str, Any]]:
        wanted = set(successor_ids)
        return [copy.deepcopy(d) for d in self._dependencies if d["successor_id"] in wanted]

    # --- Profile ---

    async def get_profile(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._profile) if self._profile else None

    async def upsert_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        self._profile = copy.deepcopy(profile)
        return profile
