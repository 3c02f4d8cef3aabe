"""In-process event bus for planner notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from kairos.events.types import EventType

logger = logging.getLogger(__name__)

Listener = Callable[[EventType, dict[str, Any]], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class _Subscription:
    listener: Listener
    event_types: frozenset[EventType]

    def wants(self, event_type: EventType) -> bool:
        return not self.event_types or event_type in self.event_types


class EventBus:
    """Async pub/sub for engine events.

    Subscribers are awaited one at a time in subscription order. Engines emit
    only after their writes are committed, so a listener always sees
    persisted state. A listener that raises is logged and counted; it never
    fails the engine call that emitted the event.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, listener: Listener, *event_types: EventType) -> Callable[[], None]:
        """Register ``listener`` for ``event_types`` (every event when none given).

        Returns a callable that removes this subscription again.
        """
        subscription = _Subscription(listener, frozenset(event_types))
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> int:
        """Deliver an event. Returns how many listeners failed."""
        payload = data or {}
        failures = 0
        for subscription in list(self._subscriptions):
            if not subscription.wants(event_type):
                continue
            try:
                await subscription.listener(event_type, payload)
            except asyncio.CancelledError:
                raise
            except Exception:
                failures += 1
                logger.exception("Listener %r failed on %s", subscription.listener, event_type)
        if failures:
            logger.warning("%d listener(s) failed for %s", failures, event_type)
        return failures
