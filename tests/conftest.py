"""Shared test fixtures for Kairos."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from kairos.config import Config
from kairos.events.bus import EventBus
from kairos.models.dependency import Dependency, EntityType
from kairos.models.project import PlanNode, Project
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import WorkItem
from kairos.storage.base import PlannerStore
from kairos.storage.memory_store import MemoryStore
from kairos.storage.sqlite_store import SQLiteStore

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def tmp_db(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
async def store(tmp_db: Path) -> SQLiteStore:
    s = SQLiteStore(tmp_db)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def memory_store() -> MemoryStore:
    s = MemoryStore()
    await s.initialize()
    return s


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(workspace_path=tmp_path)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def events(bus: EventBus) -> list[tuple[str, dict]]:
    """Every event emitted on ``bus``, in order."""
    received: list[tuple[str, dict]] = []

    async def record(event_type, data):
        received.append((event_type, data))

    bus.subscribe(record)
    return received


class Seeder:
    """Inserts projects, nodes, items and sessions relative to a fixed clock."""

    def __init__(self, store: PlannerStore, now: datetime) -> None:
        self.store = store
        self.now = now
        self.today = now.date()
        self.default_nodes: dict[str, PlanNode] = {}

    async def project(
        self,
        name: str,
        *,
        due_in: int | None = None,
        started_days_ago: int = 30,
        **fields,
    ) -> Project:
        project = Project(
            name=name,
            start_date=self.today - timedelta(days=started_days_ago),
            target_date=self.today + timedelta(days=due_in) if due_in is not None else None,
            **fields,
        )
        await self.store.insert_project(project.to_storage())
        node = PlanNode(project_id=project.id, title=name, is_default=True)
        await self.store.insert_node(node.to_storage())
        self.default_nodes[project.id] = node
        return project

    async def node(
        self, project: Project, title: str, *, parent: PlanNode | None = None, **fields
    ) -> PlanNode:
        node = PlanNode(
            project_id=project.id,
            parent_id=parent.id if parent else None,
            title=title,
            **fields,
        )
        await self.store.insert_node(node.to_storage())
        return node

    async def item(
        self,
        owner: Project | PlanNode,
        title: str,
        *,
        planned: int = 60,
        logged: int = 0,
        **fields,
    ) -> WorkItem:
        node = self.default_nodes[owner.id] if isinstance(owner, Project) else owner
        item = WorkItem(
            node_id=node.id, title=title, planned_min=planned, logged_min=logged, **fields
        )
        await self.store.insert_work_item(item.to_storage())
        return item

    async def session(
        self, item: WorkItem, minutes: int, *, days_ago: int = 0, units: int = 0
    ) -> WorkSessionLog:
        session = WorkSessionLog(
            work_item_id=item.id,
            started_at=self.now - timedelta(days=days_ago),
            minutes=minutes,
            units_done_delta=units,
        )
        await self.store.insert_session(session.to_storage())
        return session

    async def depend(
        self, predecessor: WorkItem | PlanNode, successor: WorkItem | PlanNode
    ) -> Dependency:
        def kind(entity) -> EntityType:
            return EntityType.NODE if isinstance(entity, PlanNode) else EntityType.WORK_ITEM

        dependency = Dependency(
            predecessor_type=kind(predecessor),
            predecessor_id=predecessor.id,
            successor_type=kind(successor),
            successor_id=successor.id,
        )
        await self.store.insert_dependency(dependency.to_storage())
        return dependency


@pytest.fixture
def seed(store: SQLiteStore, now: datetime) -> Seeder:
    return Seeder(store, now)


@pytest.fixture
def memory_seed(memory_store: MemoryStore, now: datetime) -> Seeder:
    return Seeder(memory_store, now)
