"""Kairos event system."""

from kairos.events.bus import EventBus
from kairos.events.types import EventType

__all__ = ["EventBus", "EventType"]
