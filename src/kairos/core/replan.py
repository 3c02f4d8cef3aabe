"""Replan: fold new session evidence into estimates and recompute risk.

Each item remembers the ``created_at`` of the newest session already folded
into its estimate (``replanned_through``). Only sessions past that watermark
count as new evidence, so replanning twice in a row changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from kairos.config import Config
from kairos.core.reestimate import reestimate_item
from kairos.core.result import Err, Ok, Result
from kairos.core.risk import ProjectAssessment, RiskPolicy, determine_mode
from kairos.core.snapshot import PlanningSnapshot, load_snapshot, parse_rows, resolve_now
from kairos.errors import ErrorKind, PlannerError
from kairos.events.bus import EventBus
from kairos.events.types import EventType
from kairos.models.contract import (
    ProjectReplanDelta,
    ReplanExplanation,
    ReplanRequest,
    ReplanResponse,
    RiskLevel,
)
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import OPEN_STATUSES, WorkItem
from kairos.storage.base import PlannerStore, parse_ts

logger = logging.getLogger(__name__)

STRATEGIES = ("rebalance", "deadline_first")


@dataclass
class Proposal:
    """A pending re-estimate for one item."""

    item: WorkItem
    previous_planned_min: int
    watermark: datetime

    @property
    def changed(self) -> bool:
        return self.item.planned_min != self.previous_planned_min


def resolve_alpha(snapshot: PlanningSnapshot, config: Config) -> float:
    if snapshot.profile.smoothing_alpha is not None:
        return snapshot.profile.smoothing_alpha
    return config.smoothing_alpha


def new_sessions(item: WorkItem, sessions: list[WorkSessionLog]) -> list[WorkSessionLog]:
    """Sessions created after the item's watermark."""
    if item.replanned_through is None:
        return sessions
    mark = parse_ts(item.replanned_through)
    return [s for s in sessions if parse_ts(s.created_at) > mark]


async def propose_reestimates(
    store: PlannerStore,
    snapshot: PlanningSnapshot,
    alpha: float,
) -> dict[str, Proposal]:
    """Pending re-estimates for open items of active projects, keyed by item ID.

    Items with new sessions get a proposal even when their estimate holds,
    so the watermark still advances.
    """
    proposals: dict[str, Proposal] = {}
    for snap in snapshot.active():
        for item in snap.items:
            if item.status not in OPEN_STATUSES:
                continue
            sessions = parse_rows(
                WorkSessionLog,
                await store.list_sessions_by_work_item(item.id),
                "session",
                snapshot.warnings,
            )
            fresh = new_sessions(item, sessions)
            if not fresh:
                continue

            updated = item.model_copy()
            updated.apply_reestimate(reestimate_item(item, alpha), snapshot.now)
            updated.replanned_through = max(parse_ts(s.created_at) for s in fresh)
            proposals[item.id] = Proposal(
                item=updated,
                previous_planned_min=item.planned_min,
                watermark=updated.replanned_through,
            )
    return proposals


def order_critical(assessments: list[ProjectAssessment], strategy: str) -> list[str]:
    """Names of critical projects in the order the strategy calls them out."""
    critical = [a for a in assessments if a.level is RiskLevel.CRITICAL]
    if strategy == "deadline_first":
        critical.sort(
            key=lambda a: (
                a.metrics.deadline is None,
                a.risk.days_left if a.risk.days_left is not None else 0,
                a.project.name,
            )
        )
    else:
        critical.sort(key=lambda a: (a.risk.slack_min_per_day, a.project.name))
    return [a.project.name for a in critical]


class ReplanEngine:
    """Re-estimates items from new sessions and reports the risk shift."""

    def __init__(
        self, store: PlannerStore, event_bus: EventBus, config: Config | None = None
    ) -> None:
        self.store = store
        self.event_bus = event_bus
        self.config = config or Config()

    async def replan(self, request: ReplanRequest) -> Result[ReplanResponse]:
        """Run one replan pass.

        Args:
            request: Trigger, strategy, scope and persistence options

        Returns:
            Ok with per-project deltas, Err(validation) for an unknown
            strategy, Err(no_candidates) when no active project is in scope.
        """
        try:
            return await self._replan(request)
        except PlannerError as e:
            logger.warning("Replan failed: %s", e)
            return Err.from_exception(e)

    async def _replan(self, request: ReplanRequest) -> Result[ReplanResponse]:
        if request.strategy not in STRATEGIES:
            return Err(
                ErrorKind.VALIDATION,
                f"Unknown strategy '{request.strategy}'. Must be one of {', '.join(STRATEGIES)}",
            )

        now = resolve_now(request.now)
        snapshot = await load_snapshot(
            self.store,
            self.config,
            project_scope=request.project_scope,
            include_archived=request.include_archived,
            now=now,
        )
        active = snapshot.active()
        if not active:
            return Err(ErrorKind.NO_CANDIDATES, "No active projects to replan")

        alpha = resolve_alpha(snapshot, self.config)
        policy = RiskPolicy.from_config(self.config)
        proposals = await propose_reestimates(self.store, snapshot, alpha)

        before = snapshot.assess(policy)
        after = snapshot.assess(policy, overrides={k: p.item for k, p in proposals.items()})

        deltas: list[ProjectReplanDelta] = []
        for snap in active:
            touched = [proposals[i.id] for i in snap.items if i.id in proposals]
            if not touched:
                continue
            b, a = before[snap.project.id], after[snap.project.id]
            changed = [p for p in touched if p.changed]
            notes = [
                f"{p.item.title}: {p.previous_planned_min} -> {p.item.planned_min} min"
                for p in changed
            ]
            if b.level != a.level:
                notes.append(f"Risk moved from {b.level} to {a.level}")
            deltas.append(
                ProjectReplanDelta(
                    project_id=snap.project.id,
                    project_name=snap.project.name,
                    risk_before=b.level,
                    risk_after=a.level,
                    required_daily_min_before=b.risk.required_daily_min,
                    required_daily_min_after=a.risk.required_daily_min,
                    remaining_min_before=b.risk.remaining_min,
                    remaining_min_after=a.risk.remaining_min,
                    changed_items_count=len(changed),
                    notes=notes,
                )
            )

        active_after = [after[s.project.id] for s in active]
        mode_after = determine_mode(a.level for a in active_after)

        explanation = None
        if request.explain:
            explanation = ReplanExplanation(
                critical_projects=order_critical(active_after, request.strategy),
                rules_applied=[
                    f"Smoothed estimates toward unit pace (alpha={alpha})",
                    "Estimates never drop below logged minutes",
                    "Items without unit progress keep their estimate",
                    _strategy_rule(request.strategy),
                ],
            )

        if not request.dry_run:
            await self._persist(proposals, now)
            await self.event_bus.emit(
                EventType.REPLAN_COMPLETED,
                {
                    "trigger": request.trigger.value,
                    "strategy": request.strategy,
                    "projects": len(active),
                    "changed_items": sum(d.changed_items_count for d in deltas),
                    "mode": mode_after.value,
                },
            )

        logger.info(
            f"Replan ({request.trigger.value}, {request.strategy}): "
            f"{len(deltas)} deltas across {len(active)} projects, mode={mode_after.value}"
        )
        return Ok(
            ReplanResponse(
                generated_at=now,
                trigger=request.trigger,
                strategy=request.strategy,
                recomputed_projects=len(active),
                global_mode_after=mode_after,
                deltas=deltas,
                explanation=explanation,
                warnings=list(snapshot.warnings),
            )
        )

    async def _persist(self, proposals: dict[str, Proposal], now: datetime) -> None:
        for proposal in proposals.values():
            data = proposal.item.model_dump(
                mode="json", include={"planned_min", "replanned_through"}
            )
            data["updated_at"] = now.isoformat()
            await self.store.update_work_item(proposal.item.id, data)
            if proposal.changed:
                await self.event_bus.emit(
                    EventType.WORK_ITEM_REESTIMATED,
                    {
                        "item_id": proposal.item.id,
                        "old_planned_min": proposal.previous_planned_min,
                        "new_planned_min": proposal.item.planned_min,
                    },
                )


def _strategy_rule(strategy: str) -> str:
    if strategy == "deadline_first":
        return "Critical projects ordered by nearest deadline"
    return "Critical projects ordered by most negative slack"
