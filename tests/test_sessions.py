"""Tests for session logging and explicit item transitions."""

import pytest

from kairos.core.sessions import SessionEngine
from kairos.errors import NotFoundError, ValidationFailed
from kairos.events.types import EventType
from kairos.models.profile import UserProfile


@pytest.fixture
def engine(store, bus, config):
    return SessionEngine(store, bus, config)


@pytest.fixture
async def book(seed):
    project = await seed.project("Reading", due_in=30)
    return await seed.item(project, "Novel", planned=60, units_total=20, units_kind="chapters")


async def test_log_session_starts_item_and_smooths(engine, store, book, now):
    session = await engine.log_session(book.id, 30, units_done_delta=5, note="ch 1-5", now=now)
    assert session.minutes == 30
    assert session.started_at == now

    stored = await store.get_work_item(book.id)
    assert stored["status"] == "in_progress"
    assert stored["logged_min"] == 30
    assert stored["units_done"] == 5
    assert stored["planned_min"] == 78
    assert stored["replanned_through"] is None

    [logged] = await store.list_sessions_by_work_item(book.id)
    assert logged["id"] == session.id
    assert logged["note"] == "ch 1-5"


async def test_log_session_emits_events(engine, book, events, now):
    await engine.log_session(book.id, 30, units_done_delta=5, now=now)
    assert [e[0] for e in events] == [
        EventType.SESSION_LOGGED,
        EventType.WORK_ITEM_REESTIMATED,
    ]
    assert events[0][1]["minutes"] == 30


async def test_session_without_units_keeps_estimate(engine, store, book, events, now):
    await engine.log_session(book.id, 20, now=now)
    stored = await store.get_work_item(book.id)
    assert stored["planned_min"] == 60
    assert [e[0] for e in events] == [EventType.SESSION_LOGGED]


async def test_units_capped_at_total(engine, store, book, now):
    await engine.log_session(book.id, 30, units_done_delta=50, now=now)
    assert (await store.get_work_item(book.id))["units_done"] == 20


@pytest.mark.parametrize("minutes", [0, -10])
async def test_non_positive_minutes_rejected(engine, book, minutes):
    with pytest.raises(ValidationFailed, match="positive"):
        await engine.log_session(book.id, minutes)


async def test_negative_units_rejected(engine, book):
    with pytest.raises(ValidationFailed):
        await engine.log_session(book.id, 10, units_done_delta=-1)


async def test_unknown_item(engine):
    with pytest.raises(NotFoundError):
        await engine.log_session("missing", 10)


async def test_invalid_stored_item_is_validation_error(engine, store, book, now):
    await store.update_work_item(book.id, {"units_done": 30})
    with pytest.raises(ValidationFailed, match=book.id):
        await engine.log_session(book.id, 10, now=now)
    assert await store.list_sessions_by_work_item(book.id) == []


async def test_terminal_item_refuses_session(engine, store, book, now):
    await engine.complete_item(book.id, now=now)
    with pytest.raises(ValidationFailed, match="done"):
        await engine.log_session(book.id, 10, now=now)
    assert await store.list_sessions_by_work_item(book.id) == []


async def test_explicit_transitions(engine, store, seed, events, now):
    project = await seed.project("Chores")
    first = await seed.item(project, "First")
    second = await seed.item(project, "Second")

    started = await engine.start_item(first.id, now=now)
    assert started.status == "in_progress"
    done = await engine.complete_item(first.id, now=now)
    assert done.completed_at == now
    stored = await store.get_work_item(first.id)
    assert stored["status"] == "done"
    assert stored["completed_at"] is not None

    await engine.skip_item(second.id, now=now)
    assert (await store.get_work_item(second.id))["status"] == "skipped"
    assert [e[1]["to"] for e in events] == ["in_progress", "done", "skipped"]


async def test_invalid_transition(engine, book, now):
    await engine.skip_item(book.id, now=now)
    with pytest.raises(ValidationFailed, match="Invalid status transition"):
        await engine.start_item(book.id, now=now)


async def test_profile_alpha_used_for_first_pass(engine, store, book, now):
    await store.upsert_profile(UserProfile(smoothing_alpha=0.5).to_storage())
    await engine.log_session(book.id, 30, units_done_delta=5, now=now)
    assert (await store.get_work_item(book.id))["planned_min"] == 90
