"""Greedy time allocation over sorted candidates."""

from __future__ import annotations

import logging

from kairos.core.scorer import ScoredCandidate
from kairos.models.contract import (
    BlockerCode,
    ConstraintBlocker,
    ReasonCode,
    RecommendationReason,
    WorkSlice,
)

logger = logging.getLogger(__name__)


def work_left(candidate: ScoredCandidate, budget: int) -> int:
    """Minutes the item still needs. Unestimated items want one default session."""
    item = candidate.item
    if item.planned_min > 0:
        return item.remaining_min
    return item.default_session_min or budget


def _blocker(candidate: ScoredCandidate, code: BlockerCode, message: str) -> ConstraintBlocker:
    return ConstraintBlocker(entity_id=candidate.item.id, code=code, message=message)


def _with_bounds_reason(
    reasons: list[RecommendationReason], default_min: int, allocated: int
) -> list[RecommendationReason]:
    """BOUNDS_APPLIED is present only while the slice differs from the default."""
    kept = [r for r in reasons if r.code is not ReasonCode.BOUNDS_APPLIED]
    if default_min and allocated != default_min:
        kept.append(
            RecommendationReason(
                code=ReasonCode.BOUNDS_APPLIED,
                message="Session duration adjusted to fit constraints",
                weight_delta=0.0,
            )
        )
    return kept


def try_allocate(
    candidate: ScoredCandidate, budget: int
) -> tuple[WorkSlice | None, ConstraintBlocker | None]:
    """Size one slice for ``candidate`` out of ``budget`` minutes.

    Returns either a slice or the blocker explaining why none fits.
    """
    item = candidate.item
    remaining = work_left(candidate, budget)
    min_s = item.min_session_min
    max_s = item.max_session_min

    if remaining <= 0:
        return None, _blocker(candidate, BlockerCode.WORK_COMPLETE, "No remaining work to allocate")

    if not item.splittable:
        if budget < remaining or budget < min_s:
            return None, _blocker(
                candidate,
                BlockerCode.INSUFFICIENT_BUDGET,
                f"Needs {remaining} min in one sitting, only {budget} min available",
            )
        allocated = remaining
    else:
        floor = min(min_s, remaining)
        if budget < floor:
            return None, _blocker(
                candidate,
                BlockerCode.SESSION_MIN_EXCEEDS_AVAILABLE,
                f"Minimum session is {min_s} min, only {budget} min available",
            )
        allocated = min(remaining, budget)
        if max_s:
            allocated = min(allocated, max_s)

    reasons = _with_bounds_reason(list(candidate.reasons), item.default_session_min, allocated)

    return (
        WorkSlice(
            work_item_id=item.id,
            work_item_seq=item.seq,
            project_id=candidate.project_id,
            node_id=item.node_id,
            title=item.title,
            allocated_min=allocated,
            min_session_min=min_s,
            max_session_min=max_s,
            default_session_min=item.default_session_min,
            splittable=item.splittable,
            due_date=candidate.due_date,
            risk_level=candidate.input.project_risk,
            score=candidate.score,
            reasons=reasons,
        ),
        None,
    )


def allocate_slices(
    candidates: list[ScoredCandidate],
    available_min: int,
    max_slices: int,
    enforce_variation: bool = False,
) -> tuple[list[WorkSlice], list[ConstraintBlocker]]:
    """Fill ``available_min`` from ``candidates`` in their given order.

    With ``enforce_variation`` the first pass takes at most one item per
    project, then first-pass slices are extended up to their session ceiling,
    then the deferred items fill whatever budget is left.
    """
    slices: list[WorkSlice] = []
    blockers: list[ConstraintBlocker] = []
    first_pass: list[ScoredCandidate] = []
    deferred: list[ScoredCandidate] = []
    projects_used: set[str] = set()
    budget = available_min

    def take(candidate: ScoredCandidate) -> bool:
        nonlocal budget
        work_slice, blocker = try_allocate(candidate, budget)
        if blocker is not None:
            logger.debug("Blocked %s: %s", candidate.item.id, blocker.code)
            blockers.append(blocker)
            return False
        slices.append(work_slice)
        budget -= work_slice.allocated_min
        return True

    for candidate in candidates:
        if len(slices) >= max_slices or budget <= 0:
            break
        if enforce_variation and candidate.project_id in projects_used:
            deferred.append(candidate)
            continue
        if take(candidate):
            first_pass.append(candidate)
            projects_used.add(candidate.project_id)

    if enforce_variation and deferred:
        for index, candidate in enumerate(first_pass):
            if budget <= 0:
                break
            left = work_left(candidate, available_min)
            ceiling = min(candidate.item.max_session_min or left, left)
            headroom = ceiling - slices[index].allocated_min
            if headroom > 0:
                extend = min(headroom, budget)
                work_slice = slices[index]
                work_slice.allocated_min += extend
                work_slice.reasons = _with_bounds_reason(
                    work_slice.reasons, work_slice.default_session_min, work_slice.allocated_min
                )
                budget -= extend

        for candidate in deferred:
            if len(slices) >= max_slices or budget <= 0:
                break
            take(candidate)

    return slices, blockers
