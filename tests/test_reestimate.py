"""Tests for exponential smoothing re-estimation."""

import pytest

from kairos.core.reestimate import implied_total, reestimate_item, smooth_reestimate
from kairos.models.work_item import WorkItem, WorkItemStatus


def test_implied_total():
    assert implied_total(30, 20, 5) == 120
    assert implied_total(30, 0, 0) is None
    assert implied_total(30, 20, 0) is None


def test_single_step_blends_plan_and_pace():
    assert smooth_reestimate(60, 30, 20, 5) == 78


def test_never_drops_below_logged():
    # implied ~111, blend ~40, but 100 minutes are already spent
    assert smooth_reestimate(10, 100, 10, 9) == 100


def test_no_unit_signal_keeps_estimate():
    assert smooth_reestimate(60, 30, 0, 0) == 60
    assert smooth_reestimate(60, 30, 20, 0) == 60


def test_alpha_one_keeps_estimate():
    assert smooth_reestimate(60, 30, 20, 5, alpha=1.0) == 60


def test_alpha_zero_jumps_to_implied():
    assert smooth_reestimate(60, 30, 20, 5, alpha=0.0) == 120


@pytest.mark.parametrize("start", [10, 60, 300, 1000])
def test_converges_toward_implied_total(start):
    implied = 120.0
    planned = start
    for _ in range(30):
        new = smooth_reestimate(planned, 30, 20, 5)
        # Each step closes at most (1 - alpha) of the gap, plus rounding.
        assert abs(new - planned) <= 0.3 * abs(implied - planned) + 0.5
        assert new >= 30
        planned = new
    assert abs(planned - implied) <= 2


def test_reestimate_item_requires_unit_progress():
    item = WorkItem(node_id="n", title="Book", planned_min=60, logged_min=30, units_total=20)
    assert reestimate_item(item) == 60

    item.units_done = 5
    assert reestimate_item(item) == 78
    assert reestimate_item(item, alpha=0.5) == 90


def test_reestimate_item_ignores_terminal_items():
    item = WorkItem(
        node_id="n",
        title="Book",
        planned_min=60,
        logged_min=30,
        units_total=20,
        units_done=5,
        status=WorkItemStatus.DONE,
    )
    assert reestimate_item(item) == 60
