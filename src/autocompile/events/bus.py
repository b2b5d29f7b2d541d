"""Event bus for compile and reload notifications."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from autocompile.events.types import Event, EventType

logger = logging.getLogger(__name__)


class EventBus:
    """Centralized event bus for broadcasting events to subscribers.

    Publishing is synchronous because load events are. Supports both:
    - Queues for consumers running in an asyncio loop
    - Callback-based subscriptions for internal handlers
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, asyncio.Queue[Event]] = {}
        self._callbacks: list[Callable[[Event], Any]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, subscriber_id: str) -> asyncio.Queue[Event]:
        """Subscribe to events and return a queue to receive them.

        Args:
            subscriber_id: Unique ID for this subscriber

        Returns:
            Queue that will receive events
        """
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers[subscriber_id] = queue
        logger.debug(f"Subscriber {subscriber_id} connected")
        return queue

    def unsubscribe(self, subscriber_id: str) -> None:
        """Unsubscribe from events."""
        if subscriber_id in self._subscribers:
            del self._subscribers[subscriber_id]
            logger.debug(f"Subscriber {subscriber_id} disconnected")

    def add_callback(self, callback: Callable[[Event], Any]) -> None:
        """Add a callback to be called for every event."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[Event], Any]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _schedule(self, coro: Coroutine[Any, Any, Any], event: Event) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning(f"Dropping async callback for {event.type.value}: no running event loop")
            return

        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        logger.debug(f"Publishing event: {event.type.value}")

        for subscriber_id, queue in list(self._subscribers.items()):
            try:
                queue.put_nowait(event)
            except Exception as e:
                logger.error(f"Failed to send event to {subscriber_id}: {e}")

        # Coroutine callbacks run later on the active loop
        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result, event)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    def emit(
        self,
        event_type: EventType,
        path: str | Path | None = None,
        data: dict[str, Any] | None = None,
    ) -> Event:
        """Convenience method to create and publish an event.

        Args:
            event_type: The type of event
            path: File the event is about
            data: Event payload data

        Returns:
            The created event
        """
        event = Event(
            type=event_type,
            path=str(path) if path is not None else None,
            data=data or {},
        )
        self.publish(event)
        return event

    @property
    def subscriber_count(self) -> int:
        """Get the number of active subscribers."""
        return len(self._subscribers)


# Global event bus instance
event_bus = EventBus()
