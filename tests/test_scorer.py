"""Tests for candidate scoring and ordering."""

from datetime import date, timedelta

import pytest

from kairos.config import Config
from kairos.core.scorer import (
    ScoringInput,
    ScoringWeights,
    deadline_pressure,
    score_work_item,
    sort_candidates,
)
from kairos.models.contract import Mode, ReasonCode, RiskLevel
from kairos.models.profile import UserProfile
from kairos.models.work_item import WorkItem, WorkItemStatus

TODAY = date(2025, 3, 10)


def _input(**kw) -> ScoringInput:
    item = kw.pop("item", None) or WorkItem(node_id="n", title="Item", planned_min=60)
    defaults = dict(
        item=item,
        project_id="p1",
        project_name="P1",
        project_risk=RiskLevel.ON_TRACK,
        slack_min_per_day=0.0,
        today=TODAY,
    )
    defaults.update(kw)
    return ScoringInput(**defaults)


def _codes(candidate) -> list[ReasonCode]:
    return [r.code for r in candidate.reasons]


@pytest.mark.parametrize(
    "days, expected",
    [(-3, 100.0), (0, 100.0), (1, 80.0), (2, 40.0), (5, 8.0), (10, 2.0), (20, 0.5)],
)
def test_deadline_pressure_table(days, expected):
    assert deadline_pressure(days) == pytest.approx(expected)


def test_score_is_sum_of_reasons():
    candidate = score_work_item(
        _input(
            item=WorkItem(
                node_id="n", title="Exam prep", type="exam", status=WorkItemStatus.IN_PROGRESS
            ),
            project_risk=RiskLevel.AT_RISK,
            slack_min_per_day=-50,
            due_date=TODAY + timedelta(days=2),
            type_priority=8.0,
            last_session_days_ago=2,
        )
    )
    assert _codes(candidate) == [
        ReasonCode.RISK_AT_RISK,
        ReasonCode.DEADLINE_PRESSURE,
        ReasonCode.BEHIND_PACE,
        ReasonCode.TYPE_PRIORITY,
        ReasonCode.MOMENTUM,
        ReasonCode.SPACING_OK,
    ]
    assert candidate.score == pytest.approx(sum(r.weight_delta for r in candidate.reasons))
    # 30 + 40*0.4 + 50*0.1 + 8 + 15 + 5*0.5
    assert candidate.score == pytest.approx(76.5)


def test_on_track_item_without_signals_scores_zero():
    candidate = score_work_item(_input())
    assert candidate.score == 0
    assert candidate.reasons == []


def test_risk_weights_dominate():
    critical = score_work_item(_input(project_risk=RiskLevel.CRITICAL))
    at_risk = score_work_item(_input(project_risk=RiskLevel.AT_RISK))
    assert critical.score == 60
    assert at_risk.score == 30


def test_behind_pace_is_capped():
    candidate = score_work_item(_input(slack_min_per_day=-1000))
    reason = candidate.reasons[0]
    assert reason.code is ReasonCode.BEHIND_PACE
    assert reason.weight_delta == 20


def test_positive_slack_gives_no_behind_pace():
    candidate = score_work_item(_input(slack_min_per_day=30))
    assert ReasonCode.BEHIND_PACE not in _codes(candidate)


def test_spacing_penalizes_same_day_work():
    today = score_work_item(_input(last_session_days_ago=0))
    stale = score_work_item(_input(last_session_days_ago=6))
    assert _codes(today) == [ReasonCode.SPACING_BLOCKED]
    assert today.score == -5
    assert _codes(stale) == [ReasonCode.SPACING_OK]
    assert stale.score == 1.5


def test_critical_focus_only_in_critical_mode():
    normal = score_work_item(_input(project_risk=RiskLevel.CRITICAL))
    focused = score_work_item(_input(project_risk=RiskLevel.CRITICAL, mode=Mode.CRITICAL))
    assert ReasonCode.CRITICAL_FOCUS not in _codes(normal)
    assert ReasonCode.CRITICAL_FOCUS in _codes(focused)
    assert focused.score == normal.score + 50


def test_deadline_message_for_past_due():
    candidate = score_work_item(_input(due_date=TODAY - timedelta(days=1)))
    assert candidate.reasons[0].message == "Past due by 1 day(s)"
    assert candidate.reasons[0].weight_delta == 40


def test_weights_from_config_and_profile():
    config = Config(weight_momentum=5.0, weight_spacing=2.0)
    profile = UserProfile(weight_spacing=1.0, weight_deadline_pressure=2.0)
    weights = ScoringWeights.from_config(config, profile)
    assert weights.momentum == 5.0
    assert weights.spacing == 1.0
    assert weights.deadline_pressure == 2.0
    assert weights.behind_pace == config.weight_behind_pace
    assert ScoringWeights.from_config(config).spacing == 2.0


def test_sort_by_score_then_due_then_seq_then_id():
    def candidate(item_id: str, seq: int, due: int | None, risk=RiskLevel.ON_TRACK):
        item = WorkItem(id=item_id, node_id="n", title=item_id, seq=seq)
        due_date = TODAY + timedelta(days=due) if due is not None else None
        return score_work_item(
            _input(
                item=item,
                project_risk=risk,
                due_date=due_date,
                weights=ScoringWeights(deadline_pressure=0),
            )
        )

    ordered = sort_candidates(
        [
            candidate("e", seq=0, due=None),
            candidate("d", seq=2, due=5),
            candidate("c", seq=1, due=5),
            candidate("b", seq=1, due=5),
            candidate("a", seq=9, due=1),
            candidate("top", seq=9, due=None, risk=RiskLevel.CRITICAL),
        ]
    )
    assert [c.item.id for c in ordered] == ["top", "a", "b", "c", "d", "e"]
