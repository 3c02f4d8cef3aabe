"""Tests for domain models and the work item state machine."""

from datetime import UTC, date, datetime

import pytest
from pydantic import ValidationError

from kairos.errors import ValidationFailed
from kairos.models.contract import RiskLevel, risk_priority
from kairos.models.profile import UserProfile
from kairos.models.project import Project, ProjectStatus
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import WorkItem, WorkItemStatus

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def _item(**kw) -> WorkItem:
    kw.setdefault("planned_min", 60)
    return WorkItem(node_id="n", title="Item", **kw)


class TestWorkItemInvariants:
    def test_negative_logged_rejected(self):
        with pytest.raises(ValidationError, match="logged_min"):
            _item(logged_min=-1)

    def test_negative_planned_rejected(self):
        with pytest.raises(ValidationError, match="planned_min"):
            _item(planned_min=-5)

    def test_units_done_above_total_rejected(self):
        with pytest.raises(ValidationError, match="units_done"):
            _item(units_total=10, units_done=11)

    def test_min_session_above_max_rejected(self):
        with pytest.raises(ValidationError, match="min_session_min"):
            _item(min_session_min=60, max_session_min=30)

    def test_unset_max_session_allows_any_min(self):
        assert _item(min_session_min=90).max_session_min == 0

    def test_remaining_min(self):
        assert _item(planned_min=60, logged_min=20).remaining_min == 40
        assert _item(planned_min=60, logged_min=90).remaining_min == 0


class TestTransitions:
    def test_todo_to_in_progress(self):
        item = _item()
        item.mark_in_progress(NOW)
        assert item.status is WorkItemStatus.IN_PROGRESS
        assert item.updated_at == NOW

    def test_done_sets_completed_at(self):
        item = _item()
        item.mark_done(NOW)
        assert item.is_terminal
        assert item.completed_at == NOW

    def test_no_transition_out_of_done(self):
        item = _item(status=WorkItemStatus.DONE)
        with pytest.raises(ValidationFailed, match="Invalid status transition"):
            item.mark_in_progress(NOW)

    def test_done_can_be_archived(self):
        item = _item(status=WorkItemStatus.DONE)
        item.archive(NOW)
        assert item.status is WorkItemStatus.ARCHIVED

    def test_skipped_cannot_be_reopened(self):
        item = _item()
        item.mark_skipped(NOW)
        with pytest.raises(ValidationFailed):
            item.transition(WorkItemStatus.TODO, NOW)

    def test_in_progress_cannot_go_back_to_todo(self):
        item = _item(status=WorkItemStatus.IN_PROGRESS)
        with pytest.raises(ValidationFailed):
            item.transition(WorkItemStatus.TODO, NOW)

    def test_same_status_is_a_no_op(self):
        item = _item(status=WorkItemStatus.ARCHIVED)
        item.archive(NOW)
        assert item.updated_at is None


class TestApplySession:
    def test_session_starts_item_and_accumulates(self):
        item = _item(units_total=10)
        item.apply_session(25, 3, NOW)
        item.apply_session(15, 2, NOW)
        assert item.status is WorkItemStatus.IN_PROGRESS
        assert item.logged_min == 40
        assert item.units_done == 5

    def test_units_capped_at_total(self):
        item = _item(units_total=10, units_done=8)
        item.apply_session(10, 5, NOW)
        assert item.units_done == 10

    def test_untracked_units_ignored(self):
        item = _item()
        item.apply_session(10, 5, NOW)
        assert item.units_done == 0

    @pytest.mark.parametrize("status", ["done", "skipped", "archived"])
    def test_terminal_items_refuse_sessions(self, status):
        item = _item(status=status)
        with pytest.raises(ValidationFailed, match="Cannot log"):
            item.apply_session(10, 0, NOW)

    def test_apply_reestimate_reports_change(self):
        item = _item(planned_min=60)
        assert item.apply_reestimate(60, NOW) is False
        assert item.apply_reestimate(78, NOW) is True
        assert item.planned_min == 78


def test_session_requires_positive_minutes():
    with pytest.raises(ValidationError):
        WorkSessionLog(work_item_id="w", started_at=NOW, minutes=0)
    with pytest.raises(ValidationError):
        WorkSessionLog(work_item_id="w", started_at=NOW, minutes=10, units_done_delta=-1)


def test_project_display_id_and_schedulable():
    project = Project(name="Thesis", start_date=date(2025, 1, 1))
    assert project.display_id == project.id[:8]
    assert project.is_schedulable
    paused = Project(name="Side", short_id="SIDE", start_date=date(2025, 1, 1), status="paused")
    assert paused.display_id == "SIDE"
    assert paused.status is ProjectStatus.PAUSED
    assert not paused.is_schedulable


def test_storage_round_trip_keeps_types():
    item = _item(due_date=date(2025, 4, 1), replanned_through=NOW)
    data = item.to_storage()
    assert data["due_date"] == "2025-04-01"
    assert WorkItem(**data) == item


def test_profile_defaults():
    profile = UserProfile()
    assert profile.lookback_days == 7
    assert profile.buffer_pct == 0
    assert profile.default_max_slices == 3
    assert profile.smoothing_alpha is None
    with pytest.raises(ValidationError):
        UserProfile(smoothing_alpha=1.5)


def test_risk_priority():
    ordered = sorted(
        [RiskLevel.ON_TRACK, RiskLevel.CRITICAL, RiskLevel.AT_RISK], key=risk_priority
    )
    assert ordered == [RiskLevel.CRITICAL, RiskLevel.AT_RISK, RiskLevel.ON_TRACK]
