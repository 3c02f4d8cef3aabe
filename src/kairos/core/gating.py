"""Eligibility gating for schedulable work.

Every open item either becomes a candidate or yields a
:class:`ConstraintBlocker` saying why not. Blockers are data, never errors.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from kairos.core.risk import ProjectAssessment
from kairos.core.snapshot import PlanningSnapshot, parse_rows
from kairos.core.tree import PlanTree
from kairos.models.contract import BlockerCode, ConstraintBlocker, RiskLevel
from kairos.models.dependency import Dependency, EntityType
from kairos.models.project import PlanNode, Project
from kairos.models.work_item import OPEN_STATUSES, WorkItem
from kairos.storage.base import PlannerStore

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    item: WorkItem
    project: Project
    assessment: ProjectAssessment
    due_date: date | None

    @property
    def risk_level(self) -> RiskLevel:
        return self.assessment.level


@dataclass
class GateResult:
    candidates: list[Candidate] = field(default_factory=list)
    blockers: list[ConstraintBlocker] = field(default_factory=list)
    policy_messages: list[str] = field(default_factory=list)


class DependencyIndex:
    """Unsatisfied predecessor edges keyed by successor ID."""

    def __init__(self, pending: dict[str, list[Dependency]] | None = None) -> None:
        self._pending = pending or {}

    def waiting_on(self, item: WorkItem, tree: PlanTree) -> list[Dependency]:
        """Open edges into the item, its node or any ancestor node."""
        targets = [item.id] + [n.id for n in tree.ancestors(item.node_id)]
        return [dep for target in targets for dep in self._pending.get(target, [])]


async def load_dependencies(
    store: PlannerStore, snapshot: PlanningSnapshot, tree: PlanTree
) -> tuple[DependencyIndex, list[str]]:
    """Resolve which dependency edges in the snapshot are still open.

    Predecessors outside the loaded projects are fetched on demand. An edge
    whose predecessor no longer exists is ignored with a warning.
    """
    items = {i.id: i for i in snapshot.items()}
    successor_ids = list(items) + [n.id for p in snapshot.projects for n in p.nodes]
    rows = await store.list_dependencies_for(successor_ids)
    if not rows:
        return DependencyIndex(), []

    warnings: list[str] = []
    outside_trees: dict[str, PlanTree] = {}
    pending: dict[str, list[Dependency]] = defaultdict(list)

    for dep in parse_rows(Dependency, rows, "dependency", warnings):
        if dep.predecessor_type is EntityType.WORK_ITEM:
            pred = items.get(dep.predecessor_id)
            if pred is None:
                data = await store.get_work_item(dep.predecessor_id)
                found = parse_rows(WorkItem, [data] if data else [], "work item", warnings)
                pred = found[0] if found else None
            complete = None if pred is None else pred.is_terminal
        else:
            if dep.predecessor_id in tree:
                complete = tree.is_complete(dep.predecessor_id)
            else:
                other = await _tree_for_node(store, dep.predecessor_id, outside_trees, warnings)
                complete = None if other is None else other.is_complete(dep.predecessor_id)

        if complete is None:
            msg = f"Dependency on missing {dep.predecessor_type} {dep.predecessor_id} ignored"
            logger.warning(msg)
            warnings.append(msg)
        elif not complete:
            pending[dep.successor_id].append(dep)

    return DependencyIndex(dict(pending)), warnings


async def _tree_for_node(
    store: PlannerStore, node_id: str, cache: dict[str, PlanTree], warnings: list[str]
) -> PlanTree | None:
    data = await store.get_node(node_id)
    found = parse_rows(PlanNode, [data] if data else [], "plan node", warnings)
    if not found:
        return None
    project_id = found[0].project_id
    if project_id not in cache:
        nodes = parse_rows(
            PlanNode, await store.list_nodes_by_project(project_id), "plan node", warnings
        )
        project_items = parse_rows(
            WorkItem, await store.list_work_items_by_project(project_id), "work item", warnings
        )
        cache[project_id] = PlanTree(nodes, project_items)
    return cache[project_id]


def _effective_due(item: WorkItem, tree: PlanTree, project_due: date | None) -> date | None:
    dates = [d for d in (item.due_date, tree.effective_due_date(item.node_id), project_due) if d]
    return min(dates) if dates else None


def gate_items(
    snapshot: PlanningSnapshot,
    assessments: dict[str, ProjectAssessment],
    tree: PlanTree,
    dependencies: DependencyIndex,
) -> GateResult:
    """Split open items of the snapshot into candidates and blockers."""
    result = GateResult()
    today = snapshot.today

    for snap in snapshot.projects:
        project = snap.project
        assessment = assessments[project.id]
        for item in snap.items:
            if item.status not in OPEN_STATUSES:
                continue

            blocker = _check_item(item, project, tree, dependencies, today)
            if blocker is not None:
                logger.debug("Item %s blocked: %s", item.id, blocker.code)
                result.blockers.append(blocker)
                continue

            result.candidates.append(
                Candidate(
                    item=item,
                    project=project,
                    assessment=assessment,
                    due_date=_effective_due(item, tree, assessment.metrics.deadline),
                )
            )
    return result


def _check_item(
    item: WorkItem,
    project: Project,
    tree: PlanTree,
    dependencies: DependencyIndex,
    today: date,
) -> ConstraintBlocker | None:
    def blocked(code: BlockerCode, message: str) -> ConstraintBlocker:
        return ConstraintBlocker(entity_id=item.id, code=code, message=message)

    if not project.is_schedulable:
        return blocked(
            BlockerCode.PROJECT_INACTIVE, f"Project '{project.name}' is {project.status}"
        )
    if item.planned_min > 0 and item.logged_min >= item.planned_min:
        return blocked(BlockerCode.WORK_COMPLETE, "Planned work already logged")

    not_before = max(
        (d for d in (item.not_before, tree.effective_not_before(item.node_id)) if d),
        default=None,
    )
    if not_before and not_before > today:
        return blocked(BlockerCode.NOT_BEFORE, f"Not available before {not_before.isoformat()}")

    waiting = dependencies.waiting_on(item, tree)
    if waiting:
        first = waiting[0]
        return blocked(
            BlockerCode.DEPENDENCY,
            f"Waiting on {first.predecessor_type} {first.predecessor_id}",
        )
    return None


def restrict_to_critical(gate: GateResult) -> GateResult:
    """Keep only candidates of critical projects, blocking the rest."""
    kept: list[Candidate] = []
    blockers = list(gate.blockers)
    for candidate in gate.candidates:
        if candidate.risk_level is RiskLevel.CRITICAL:
            kept.append(candidate)
            continue
        blockers.append(
            ConstraintBlocker(
                entity_id=candidate.item.id,
                code=BlockerCode.NOT_IN_CRITICAL_SCOPE,
                message="Not in critical scope during critical mode",
            )
        )

    messages = list(gate.policy_messages)
    if gate.candidates and not kept:
        messages.append(
            "Critical mode restricts work to critical projects, "
            "and none of their items are currently available"
        )
    return GateResult(candidates=kept, blockers=blockers, policy_messages=messages)
