"""Load a coherent planning snapshot from the repositories.

The engines never query storage while deciding; they read everything they
need up front through this module and then work on plain models.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from kairos.config import Config
from kairos.core.risk import ProjectAssessment, RiskPolicy, assess_project
from kairos.core.tree import PlanTree
from kairos.errors import ValidationFailed
from kairos.models.profile import UserProfile
from kairos.models.project import PlanNode, Project
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import WorkItem
from kairos.storage.base import PlannerStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class ProjectSnapshot:
    project: Project
    nodes: list[PlanNode]
    items: list[WorkItem]


@dataclass
class PlanningSnapshot:
    now: datetime
    profile: UserProfile
    projects: list[ProjectSnapshot]
    recent_sessions: list[WorkSessionLog]
    warnings: list[str] = field(default_factory=list)

    @property
    def today(self) -> date:
        return self.now.date()

    def active(self) -> list[ProjectSnapshot]:
        return [p for p in self.projects if p.project.is_schedulable]

    def items(self) -> list[WorkItem]:
        return [item for p in self.projects for item in p.items]

    def tree(self) -> PlanTree:
        return PlanTree(
            (node for p in self.projects for node in p.nodes),
            self.items(),
        )

    def assess(
        self,
        policy: RiskPolicy,
        *,
        overrides: dict[str, WorkItem] | None = None,
    ) -> dict[str, ProjectAssessment]:
        """Risk per project ID. ``overrides`` replaces items by ID first."""
        overrides = overrides or {}
        result: dict[str, ProjectAssessment] = {}
        for snap in self.projects:
            items = [overrides.get(i.id, i) for i in snap.items]
            result[snap.project.id] = assess_project(
                snap.project,
                items,
                self.recent_sessions,
                today=self.today,
                lookback_days=self.profile.lookback_days,
                buffer_pct=self.profile.buffer_pct,
                policy=policy,
            )
        return result


def resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(UTC)
    return now if now.tzinfo else now.replace(tzinfo=UTC)


def parse_rows(
    model: type[M],
    rows: Iterable[dict[str, Any]],
    label: str,
    warnings: list[str],
    *,
    where: str = "",
) -> list[M]:
    """Validate stored rows into ``model``; invalid rows become warnings."""
    parsed: list[M] = []
    for data in rows:
        try:
            parsed.append(model(**data))
        except ValidationError as e:
            msg = f"Skipped {label} {data.get('id')}{where}: invalid data"
            logger.warning("%s (%s)", msg, e.errors()[0].get("msg", ""))
            warnings.append(msg)
    return parsed


async def load_profile(
    store: PlannerStore, config: Config, warnings: list[str] | None = None
) -> UserProfile:
    """The saved profile, or one built from the workspace defaults.

    An unreadable saved profile falls back to the defaults with a warning.
    """
    data = await store.get_profile()
    if data:
        sink = [] if warnings is None else warnings
        parsed = parse_rows(UserProfile, [data], "user profile", sink)
        if parsed:
            return parsed[0]
    return UserProfile(
        lookback_days=config.default_lookback_days,
        default_max_slices=config.default_max_slices,
    )


def filter_scope(projects: list[Project], scope: list[str]) -> list[Project]:
    """Keep projects matched by ID or short ID. Unknown references fail."""
    if not scope:
        return projects
    wanted = set(scope)
    selected = [p for p in projects if p.id in wanted or (p.short_id and p.short_id in wanted)]
    known = {p.id for p in selected} | {p.short_id for p in selected if p.short_id}
    unknown = sorted(wanted - known)
    if unknown:
        raise ValidationFailed(f"Unknown project(s) in scope: {', '.join(unknown)}")
    return selected


async def load_snapshot(
    store: PlannerStore,
    config: Config,
    *,
    project_scope: list[str] | None = None,
    include_archived: bool = False,
    now: datetime | None = None,
) -> PlanningSnapshot:
    """Read projects in scope with their nodes, items and recent sessions.

    Rows that fail model validation are reported as warnings and skipped so
    one bad record cannot sink the whole call.
    """
    current = resolve_now(now)
    warnings: list[str] = []
    profile = await load_profile(store, config, warnings)

    project_rows = await store.list_projects(include_archived=include_archived)
    projects = parse_rows(Project, project_rows, "project", warnings)
    projects = filter_scope(projects, project_scope or [])

    snapshots: list[ProjectSnapshot] = []
    for project in projects:
        where = f" in '{project.name}'"
        node_rows = await store.list_nodes_by_project(project.id)
        item_rows = await store.list_work_items_by_project(project.id)
        nodes = parse_rows(PlanNode, node_rows, "plan node", warnings, where=where)
        items = parse_rows(WorkItem, item_rows, "work item", warnings, where=where)
        snapshots.append(ProjectSnapshot(project=project, nodes=nodes, items=items))

    sessions = parse_rows(
        WorkSessionLog,
        await store.list_recent_sessions(profile.lookback_days, now=current),
        "session",
        warnings,
    )

    logger.debug(
        "Loaded snapshot: %d projects, %d recent sessions", len(snapshots), len(sessions)
    )
    return PlanningSnapshot(
        now=current,
        profile=profile,
        projects=snapshots,
        recent_sessions=sessions,
        warnings=warnings,
    )
