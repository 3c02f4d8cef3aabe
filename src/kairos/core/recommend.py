"""WhatNow: what to work on right now, given the minutes available."""

from __future__ import annotations

import logging

from kairos.config import Config
from kairos.core.allocator import allocate_slices
from kairos.core.gating import gate_items, load_dependencies, restrict_to_critical
from kairos.core.result import Err, Ok, Result
from kairos.core.risk import RiskPolicy, determine_mode, rank_by_risk
from kairos.core.scorer import ScoringInput, ScoringWeights, score_work_item, sort_candidates
from kairos.core.snapshot import PlanningSnapshot, load_snapshot, resolve_now
from kairos.errors import ErrorKind, PlannerError
from kairos.events.bus import EventBus
from kairos.events.types import EventType
from kairos.models.contract import Mode, WhatNowRequest, WhatNowResponse
from kairos.storage.base import PlannerStore

logger = logging.getLogger(__name__)


def _last_session_days(snapshot: PlanningSnapshot) -> dict[str, int]:
    """Days since the most recent session per project ID (within lookback)."""
    owner = {item.id: snap.project.id for snap in snapshot.projects for item in snap.items}
    days: dict[str, int] = {}
    for session in snapshot.recent_sessions:
        project_id = owner.get(session.work_item_id)
        if project_id is None:
            continue
        ago = (snapshot.today - session.started_at.date()).days
        days[project_id] = min(ago, days.get(project_id, ago))
    return days


class WhatNowEngine:
    """Scores eligible work items and fills the available time with slices."""

    def __init__(
        self, store: PlannerStore, event_bus: EventBus, config: Config | None = None
    ) -> None:
        self.store = store
        self.event_bus = event_bus
        self.config = config or Config()

    async def recommend(self, request: WhatNowRequest) -> Result[WhatNowResponse]:
        """Recommend work slices for ``request.available_min`` minutes.

        Args:
            request: Budget, project scope and allocation options

        Returns:
            Ok with the response, or Err(no_candidates) carrying every blocker
            when nothing is eligible. Validation and storage failures come
            back as Err of the matching kind.
        """
        try:
            return await self._recommend(request)
        except PlannerError as e:
            logger.warning("WhatNow failed: %s", e)
            return Err.from_exception(e)

    async def _recommend(self, request: WhatNowRequest) -> Result[WhatNowResponse]:
        if request.available_min <= 0:
            return Err(ErrorKind.VALIDATION, "available_min must be positive")

        now = resolve_now(request.now)
        snapshot = await load_snapshot(
            self.store, self.config, project_scope=request.project_scope, now=now
        )
        max_slices = request.max_slices
        if max_slices <= 0:
            max_slices = snapshot.profile.default_max_slices
        warnings = list(snapshot.warnings)

        policy = RiskPolicy.from_config(self.config)
        assessments = snapshot.assess(policy)
        active = [assessments[p.project.id] for p in snapshot.active()]
        mode = determine_mode(a.level for a in active)
        top_risk = [a.to_summary() for a in rank_by_risk(active)[: self.config.top_risk_count]]

        tree = snapshot.tree()
        dependencies, dep_warnings = await load_dependencies(self.store, snapshot, tree)
        warnings.extend(dep_warnings)

        gate = gate_items(snapshot, assessments, tree, dependencies)
        if mode is Mode.CRITICAL:
            gate = restrict_to_critical(gate)

        if not gate.candidates:
            logger.info("WhatNow: no candidates (%d blockers)", len(gate.blockers))
            return Err(
                ErrorKind.NO_CANDIDATES,
                "No schedulable work items",
                blockers=gate.blockers,
                policy_messages=gate.policy_messages,
            )

        weights = ScoringWeights.from_config(self.config, snapshot.profile)
        spacing = _last_session_days(snapshot)
        scored = sort_candidates(
            [
                score_work_item(
                    ScoringInput(
                        item=c.item,
                        project_id=c.project.id,
                        project_name=c.project.name,
                        project_risk=c.risk_level,
                        slack_min_per_day=c.assessment.risk.slack_min_per_day,
                        today=snapshot.today,
                        mode=mode,
                        due_date=c.due_date,
                        type_priority=self.config.type_priority(c.item.type),
                        last_session_days_ago=spacing.get(c.project.id),
                        weights=weights,
                    )
                )
                for c in gate.candidates
            ]
        )

        slices, alloc_blockers = allocate_slices(
            scored, request.available_min, max_slices, request.enforce_variation
        )
        allocated = sum(s.allocated_min for s in slices)
        policy_messages = list(gate.policy_messages)
        if mode is Mode.CRITICAL:
            policy_messages.append("Critical mode: only critical projects are recommended")
        if not slices:
            warnings.append("No candidate fits the available time")

        response = WhatNowResponse(
            generated_at=now,
            mode=mode,
            requested_min=request.available_min,
            allocated_min=allocated,
            unallocated_min=request.available_min - allocated,
            policy_messages=policy_messages,
            warnings=warnings,
            recommendations=slices,
            blockers=gate.blockers + alloc_blockers,
            top_risk_projects=top_risk,
        )

        if not request.dry_run:
            await self.event_bus.emit(
                EventType.RECOMMENDATION_GENERATED,
                {
                    "mode": mode.value,
                    "requested_min": request.available_min,
                    "allocated_min": allocated,
                    "work_item_ids": [s.work_item_id for s in slices],
                },
            )

        logger.info(
            f"WhatNow: {len(slices)} slices, {allocated}/{request.available_min} min "
            f"(mode={mode.value})"
        )
        return Ok(response)
