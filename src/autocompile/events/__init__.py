"""Notifications about compilation and module swaps."""

from autocompile.events.bus import EventBus, event_bus
from autocompile.events.types import Event, EventType

__all__ = ["Event", "EventBus", "EventType", "event_bus"]
