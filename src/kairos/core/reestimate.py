"""Exponential smoothing of a work item's planned minutes.

Unit-tracked items reveal their real size as work is logged: if 5 of 20
chapters took 30 minutes, the whole book implies 120. The planned estimate
moves toward that figure one step at a time instead of jumping to it.
"""

from __future__ import annotations

import logging

from kairos.models.work_item import WorkItem

logger = logging.getLogger(__name__)

DEFAULT_ALPHA = 0.7


def implied_total(logged_min: int, units_total: int, units_done: int) -> float | None:
    """Total minutes implied by the pace so far, or None without a signal."""
    if units_total <= 0 or units_done <= 0 or units_done > units_total:
        return None
    return logged_min / units_done * units_total


def smooth_reestimate(
    current_planned: int,
    logged_min: int,
    units_total: int,
    units_done: int,
    alpha: float = DEFAULT_ALPHA,
) -> int:
    """One smoothing step: ``round(α·planned + (1−α)·implied)``, never below logged.

    Returns ``current_planned`` unchanged when there is no reliable signal.
    """
    implied = implied_total(logged_min, units_total, units_done)
    if implied is None:
        return current_planned
    new_planned = round(alpha * current_planned + (1 - alpha) * implied)
    return max(new_planned, logged_min)


def reestimate_item(item: WorkItem, alpha: float = DEFAULT_ALPHA) -> int:
    """Proposed ``planned_min`` for ``item`` (its current value if none)."""
    if not item.eligible_for_reestimate:
        return item.planned_min
    proposed = smooth_reestimate(
        item.planned_min, item.logged_min, item.units_total, item.units_done, alpha
    )
    if proposed != item.planned_min:
        logger.debug(
            "Re-estimate %s: %d -> %d min (%d/%d %s)",
            item.id,
            item.planned_min,
            proposed,
            item.units_done,
            item.units_total,
            item.units_kind or "units",
        )
    return proposed
