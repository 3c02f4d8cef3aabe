"""Event type constants for Kairos."""

from enum import StrEnum


class EventType(StrEnum):
    SESSION_LOGGED = "session.logged"

    WORK_ITEM_UPDATED = "work_item.updated"
    WORK_ITEM_REESTIMATED = "work_item.reestimated"

    REPLAN_COMPLETED = "replan.completed"
    RECOMMENDATION_GENERATED = "recommendation.generated"
