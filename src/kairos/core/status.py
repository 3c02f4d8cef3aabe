"""Project status overview."""

from __future__ import annotations

import logging
from datetime import date

from kairos.config import Config
from kairos.core.gating import gate_items, load_dependencies
from kairos.core.replan import propose_reestimates, resolve_alpha
from kairos.core.result import Err, Ok, Result
from kairos.core.risk import ProjectAssessment, RiskPolicy, determine_mode
from kairos.core.snapshot import load_snapshot, resolve_now
from kairos.errors import PlannerError
from kairos.models.contract import (
    ConstraintBlocker,
    GlobalStatusSummary,
    Mode,
    ProjectStatusView,
    RiskLevel,
    StatusRequest,
    StatusResponse,
    risk_priority,
)
from kairos.storage.base import PlannerStore

logger = logging.getLogger(__name__)


def policy_message(mode: Mode, at_risk_count: int) -> str:
    if mode is Mode.CRITICAL:
        return "Critical work requires attention"
    if at_risk_count:
        return "Some projects at risk, monitor closely"
    return "All projects on track"


def build_view(assessment: ProjectAssessment) -> ProjectStatusView:
    project, metrics, risk = assessment.project, assessment.metrics, assessment.risk
    notes: list[str] = []
    if metrics.deadline is None:
        notes.append("No deadline set")
    elif risk.days_left is not None and risk.days_left < 0 and risk.remaining_min:
        notes.append(f"Past due by {-risk.days_left} day(s)")
    if risk.level is not RiskLevel.ON_TRACK and risk.recent_daily_min == 0:
        notes.append("No sessions logged recently")

    return ProjectStatusView(
        project_id=project.id,
        project_name=project.name,
        status=project.status.value,
        risk_level=risk.level,
        due_date=metrics.deadline,
        days_left=risk.days_left,
        progress_time_pct=risk.progress_time_pct,
        progress_structural_pct=metrics.structural_pct,
        planned_min_total=metrics.planned_min_total,
        logged_min_total=metrics.logged_min_total,
        remaining_min_total=risk.remaining_min,
        required_daily_min=risk.required_daily_min,
        recent_daily_min=risk.recent_daily_min,
        slack_min_per_day=risk.slack_min_per_day,
        safe_for_secondary_work=risk.level is RiskLevel.ON_TRACK,
        notes=notes,
    )


def _view_key(view: ProjectStatusView) -> tuple:
    return (
        risk_priority(view.risk_level),
        view.due_date is None,
        view.due_date or date.max,
        view.project_name,
    )


class StatusEngine:
    """Risk and progress per active project plus a global summary."""

    def __init__(self, store: PlannerStore, config: Config | None = None) -> None:
        self.store = store
        self.config = config or Config()

    async def get_status(self, request: StatusRequest) -> Result[StatusResponse]:
        try:
            return await self._get_status(request)
        except PlannerError as e:
            logger.warning("Status failed: %s", e)
            return Err.from_exception(e)

    async def _get_status(self, request: StatusRequest) -> Result[StatusResponse]:
        now = resolve_now(request.now)
        snapshot = await load_snapshot(
            self.store,
            self.config,
            project_scope=request.project_scope,
            include_archived=request.include_archived,
            now=now,
        )
        warnings = list(snapshot.warnings)
        policy = RiskPolicy.from_config(self.config)

        overrides = {}
        if request.recalc:
            # Preview only; replan is what persists.
            proposals = await propose_reestimates(
                self.store, snapshot, resolve_alpha(snapshot, self.config)
            )
            overrides = {k: p.item for k, p in proposals.items()}
            pending = sum(1 for p in proposals.values() if p.changed)
            if pending:
                warnings.append(f"{pending} item estimate(s) pending replan")

        assessments = snapshot.assess(policy, overrides=overrides)
        active = [assessments[s.project.id] for s in snapshot.active()]
        views = sorted((build_view(a) for a in active), key=_view_key)

        counts = {level: 0 for level in RiskLevel}
        for a in active:
            counts[a.level] += 1
        mode = determine_mode(a.level for a in active)

        blockers: list[ConstraintBlocker] = []
        if request.include_blockers:
            tree = snapshot.tree()
            dependencies, dep_warnings = await load_dependencies(self.store, snapshot, tree)
            warnings.extend(dep_warnings)
            blockers = gate_items(snapshot, assessments, tree, dependencies).blockers

        summary = GlobalStatusSummary(
            generated_at=now,
            counts_total=len(active),
            counts_on_track=counts[RiskLevel.ON_TRACK],
            counts_at_risk=counts[RiskLevel.AT_RISK],
            counts_critical=counts[RiskLevel.CRITICAL],
            mode=mode,
            policy_message=policy_message(mode, counts[RiskLevel.AT_RISK]),
        )
        logger.info(
            "Status: %d projects (%d critical, %d at risk)",
            len(active),
            summary.counts_critical,
            summary.counts_at_risk,
        )
        return Ok(
            StatusResponse(summary=summary, projects=views, blockers=blockers, warnings=warnings)
        )
