"""Tests for the replan engine."""

import pytest

from kairos.core.replan import ReplanEngine, order_critical
from kairos.core.risk import RiskPolicy
from kairos.core.sessions import SessionEngine
from kairos.core.snapshot import load_snapshot
from kairos.errors import ErrorKind
from kairos.events.types import EventType
from kairos.models.contract import Mode, ReplanRequest, ReplanTrigger, RiskLevel
from kairos.models.profile import UserProfile
from kairos.models.work_item import WorkItem


@pytest.fixture
def engine(store, bus, config):
    return ReplanEngine(store, bus, config)


def _request(now, **kw) -> ReplanRequest:
    return ReplanRequest(now=now, **kw)


async def _book(seed, *, due_in=20, logged=30, units_done=5):
    project = await seed.project("Book club", due_in=due_in)
    item = await seed.item(
        project, "Read novel", planned=60, logged=logged, units_total=20, units_done=units_done
    )
    await seed.session(item, logged, units=units_done)
    return project, item


async def test_logged_pace_raises_estimate_after_replan(engine, store, bus, config, seed, now):
    project = await seed.project("Book club", due_in=30)
    item = await seed.item(project, "Read novel", planned=60, units_total=20)
    sessions = SessionEngine(store, bus, config)
    await sessions.log_session(item.id, 30, units_done_delta=5, now=now)
    after_log = (await store.get_work_item(item.id))["planned_min"]

    response = (await engine.replan(_request(now))).unwrap()
    stored = await store.get_work_item(item.id)
    assert stored["planned_min"] > after_log
    assert response.deltas[0].changed_items_count == 1


async def test_replan_reports_risk_delta(engine, store, seed, now):
    project, item = await _book(seed)

    response = (await engine.replan(_request(now))).unwrap()
    assert response.recomputed_projects == 1
    assert response.trigger is ReplanTrigger.MANUAL
    [delta] = response.deltas
    assert delta.project_id == project.id
    assert delta.remaining_min_before == 30
    assert delta.remaining_min_after == 48
    assert delta.required_daily_min_after == pytest.approx(2.4)
    assert delta.risk_before is RiskLevel.ON_TRACK
    assert delta.risk_after is RiskLevel.ON_TRACK
    assert delta.notes == ["Read novel: 60 -> 78 min"]

    stored = await store.get_work_item(item.id)
    assert stored["planned_min"] == 78
    assert stored["replanned_through"] is not None


async def test_second_replan_without_sessions_is_empty(engine, store, seed, now):
    _, item = await _book(seed)

    first = (await engine.replan(_request(now))).unwrap()
    second = (await engine.replan(_request(now))).unwrap()
    assert first.deltas
    assert second.deltas == []
    assert (await store.get_work_item(item.id))["planned_min"] == 78


async def test_new_session_after_replan_is_picked_up(engine, store, seed, now):
    _, item = await _book(seed)
    await engine.replan(_request(now))

    await store.update_work_item(item.id, {"logged_min": 60, "units_done": 10})
    await seed.session(item, 30, units=5)

    response = (await engine.replan(_request(now))).unwrap()
    assert len(response.deltas) == 1
    # implied stays 120: 0.7 * 78 + 0.3 * 120
    assert (await store.get_work_item(item.id))["planned_min"] == 91


async def test_dry_run_persists_nothing(engine, store, seed, events, now):
    _, item = await _book(seed)

    preview = (await engine.replan(_request(now, dry_run=True))).unwrap()
    assert preview.deltas[0].remaining_min_after == 48
    assert (await store.get_work_item(item.id))["planned_min"] == 60
    assert events == []

    real = (await engine.replan(_request(now))).unwrap()
    assert real.deltas == preview.deltas


async def test_events_on_persisted_replan(engine, seed, events, now):
    _, item = await _book(seed)
    await engine.replan(_request(now, trigger=ReplanTrigger.SESSION_LOGGED))

    kinds = [e[0] for e in events]
    assert kinds == [EventType.WORK_ITEM_REESTIMATED, EventType.REPLAN_COMPLETED]
    assert events[0][1] == {"item_id": item.id, "old_planned_min": 60, "new_planned_min": 78}
    assert events[1][1]["trigger"] == "session_logged"


async def test_item_without_units_keeps_estimate_but_advances(engine, store, seed, now):
    project = await seed.project("Essay", due_in=20)
    item = await seed.item(project, "Draft", planned=120, logged=45)
    await seed.session(item, 45)

    response = (await engine.replan(_request(now))).unwrap()
    assert response.deltas[0].changed_items_count == 0
    stored = await store.get_work_item(item.id)
    assert stored["planned_min"] == 120
    assert stored["replanned_through"] is not None

    assert (await engine.replan(_request(now))).unwrap().deltas == []


async def test_profile_alpha_overrides_config(engine, store, seed, now):
    await store.upsert_profile(UserProfile(smoothing_alpha=0.5).to_storage())
    _, item = await _book(seed)

    await engine.replan(_request(now))
    assert (await store.get_work_item(item.id))["planned_min"] == 90


async def test_bad_item_data_is_a_warning(engine, store, seed, now):
    project, good = await _book(seed)
    broken = WorkItem(
        node_id=seed.default_nodes[project.id].id, title="Broken", units_total=20
    ).to_storage()
    broken["units_done"] = 30
    await store.insert_work_item(broken)

    response = (await engine.replan(_request(now))).unwrap()
    assert len(response.deltas) == 1
    assert any(broken["id"] in w for w in response.warnings)
    assert (await store.get_work_item(good.id))["planned_min"] == 78


async def test_unknown_strategy_is_rejected(engine, seed, now):
    await _book(seed)
    result = await engine.replan(_request(now, strategy="panic"))
    assert result.kind is ErrorKind.VALIDATION


async def test_no_active_projects(engine, seed, now):
    await seed.project("Paused", status="paused")
    result = await engine.replan(_request(now))
    assert result.kind is ErrorKind.NO_CANDIDATES


async def test_explanation_orders_critical_projects_by_strategy(engine, seed, now):
    nearer = await seed.project("Small overdue", due_in=-2)
    worse = await seed.project("Big overdue", due_in=-1)
    await seed.item(nearer, "A", planned=100)
    await seed.item(worse, "B", planned=1000)

    rebalance = (await engine.replan(_request(now))).unwrap()
    deadline = (await engine.replan(_request(now, strategy="deadline_first"))).unwrap()
    assert rebalance.global_mode_after is Mode.CRITICAL
    assert rebalance.explanation.critical_projects == ["Big overdue", "Small overdue"]
    assert deadline.explanation.critical_projects == ["Small overdue", "Big overdue"]
    assert rebalance.explanation.rules_applied


async def test_explain_false_omits_explanation(engine, seed, now):
    await _book(seed)
    response = (await engine.replan(_request(now, explain=False))).unwrap()
    assert response.explanation is None


async def test_order_critical_ignores_non_critical(store, config, seed, now):
    calm = await seed.project("Calm", due_in=100)
    await seed.item(calm, "Work", planned=10)
    snapshot = await load_snapshot(store, config, now=now)
    assessments = list(snapshot.assess(RiskPolicy()).values())
    assert order_critical(assessments, "rebalance") == []
