"""Session logging and explicit work item transitions."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from pydantic import ValidationError

from kairos.config import Config
from kairos.core.reestimate import reestimate_item
from kairos.core.snapshot import load_profile, resolve_now
from kairos.errors import NotFoundError, ValidationFailed
from kairos.events.bus import EventBus
from kairos.events.types import EventType
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import WorkItem, WorkItemStatus
from kairos.storage.base import PlannerStore

logger = logging.getLogger(__name__)

# Fields a session or transition may change on the stored item
_MUTABLE_FIELDS = {
    "status",
    "planned_min",
    "logged_min",
    "units_done",
    "completed_at",
    "updated_at",
}


class SessionEngine:
    """Applies logged sessions to work items."""

    def __init__(
        self, store: PlannerStore, event_bus: EventBus, config: Config | None = None
    ) -> None:
        self.store = store
        self.event_bus = event_bus
        self.config = config or Config()

    async def _load(self, work_item_id: str) -> WorkItem:
        data = await self.store.get_work_item(work_item_id)
        if data is None:
            raise NotFoundError(f"Work item not found: {work_item_id}")
        try:
            return WorkItem(**data)
        except ValidationError as e:
            raise ValidationFailed(f"Stored work item {work_item_id} is invalid: {e}") from e

    async def _save(self, item: WorkItem) -> None:
        await self.store.update_work_item(
            item.id, item.model_dump(mode="json", include=_MUTABLE_FIELDS)
        )

    async def log_session(
        self,
        work_item_id: str,
        minutes: int,
        units_done_delta: int = 0,
        note: str | None = None,
        started_at: datetime | None = None,
        now: datetime | None = None,
    ) -> WorkSessionLog:
        """Record time spent on a work item.

        The item moves from todo to in_progress, accumulates minutes and
        units, and unit-tracked items get one smoothing step right away.

        Args:
            work_item_id: Item the session belongs to
            minutes: Minutes worked (must be positive)
            units_done_delta: Units completed in this session
            note: Optional free-text note
            started_at: Session start (defaults to now)
            now: Clock override

        Returns:
            The stored session

        Raises:
            ValidationFailed: Non-positive minutes, negative units, or a
                terminal item
            NotFoundError: Unknown work item
        """
        if minutes <= 0:
            raise ValidationFailed("Session minutes must be positive")
        if units_done_delta < 0:
            raise ValidationFailed("units_done_delta cannot be negative")

        current = resolve_now(now)
        item = await self._load(work_item_id)
        item.apply_session(minutes, units_done_delta, current)

        profile = await load_profile(self.store, self.config)
        alpha = profile.smoothing_alpha
        if alpha is None:
            alpha = self.config.smoothing_alpha
        old_planned = item.planned_min
        reestimated = item.apply_reestimate(reestimate_item(item, alpha), current)

        session = WorkSessionLog(
            work_item_id=item.id,
            started_at=started_at or current,
            minutes=minutes,
            units_done_delta=units_done_delta,
            note=note,
            created_at=datetime.now(UTC),
        )
        await self._save(item)
        await self.store.insert_session(session.to_storage())

        await self.event_bus.emit(
            EventType.SESSION_LOGGED,
            {
                "session_id": session.id,
                "item_id": item.id,
                "minutes": minutes,
                "units_done_delta": units_done_delta,
            },
        )
        if reestimated:
            await self.event_bus.emit(
                EventType.WORK_ITEM_REESTIMATED,
                {
                    "item_id": item.id,
                    "old_planned_min": old_planned,
                    "new_planned_min": item.planned_min,
                },
            )

        logger.info(f"Logged {minutes} min on {item.id} (planned={item.planned_min})")
        return session

    async def _transition(
        self, work_item_id: str, status: WorkItemStatus, now: datetime | None
    ) -> WorkItem:
        item = await self._load(work_item_id)
        previous = item.status
        item.transition(status, resolve_now(now))
        await self._save(item)
        await self.event_bus.emit(
            EventType.WORK_ITEM_UPDATED,
            {"item_id": item.id, "from": previous.value, "to": item.status.value},
        )
        logger.info("Work item %s: %s -> %s", item.id, previous, item.status)
        return item

    async def start_item(self, work_item_id: str, now: datetime | None = None) -> WorkItem:
        return await self._transition(work_item_id, WorkItemStatus.IN_PROGRESS, now)

    async def complete_item(self, work_item_id: str, now: datetime | None = None) -> WorkItem:
        return await self._transition(work_item_id, WorkItemStatus.DONE, now)

    async def skip_item(self, work_item_id: str, now: datetime | None = None) -> WorkItem:
        return await self._transition(work_item_id, WorkItemStatus.SKIPPED, now)
