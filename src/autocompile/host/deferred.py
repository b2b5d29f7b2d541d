"""Deferred actions run after the current load has finished.

Artifact reloads are queued here instead of running inside the load that
requested them. The queue is drained when the host goes idle (the
outermost import returns) or, when an asyncio loop is running in the
thread, on the loop's next iteration.
"""

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class LoadPriority(str, Enum):
    """Urgency of a deferred action."""

    IMMEDIATE = "immediate"
    DEFERRED = "deferred"  # Lowest urgency


_PRIORITY_ORDER = {
    LoadPriority.IMMEDIATE: 0,
    LoadPriority.DEFERRED: 1,
}


def running_loop() -> asyncio.AbstractEventLoop | None:
    """Return the asyncio loop running in this thread, if any."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


@dataclass
class PendingAction:
    """An action waiting in the queue."""

    action: Callable[[], Any]
    priority: LoadPriority
    description: str


class DeferredQueue:
    """Priority queue of actions to run once the host is idle.

    IMMEDIATE actions run before DEFERRED ones; actions of equal priority
    run in the order they were scheduled. A failing action is logged and
    does not stop the others.
    """

    def __init__(self) -> None:
        self._pending: list[tuple[int, int, PendingAction]] = []
        self._sequence = itertools.count()
        self._draining = False
        self._drain_scheduled = False

    def schedule(
        self,
        action: Callable[[], Any],
        priority: LoadPriority = LoadPriority.DEFERRED,
        description: str | None = None,
    ) -> None:
        pending = PendingAction(
            action=action,
            priority=priority,
            description=description or getattr(action, "__name__", repr(action)),
        )
        heapq.heappush(self._pending, (_PRIORITY_ORDER[priority], next(self._sequence), pending))
        logger.debug(f"Scheduled {pending.description} ({priority.value})")
        self._schedule_drain()

    def _schedule_drain(self) -> None:
        if self._drain_scheduled:
            return
        loop = running_loop()
        if loop is None:
            return
        self._drain_scheduled = True
        loop.call_soon(self._drain_from_loop)

    def _drain_from_loop(self) -> None:
        self._drain_scheduled = False
        self.run_pending()

    def run_pending(self) -> int:
        """Run every pending action, including ones scheduled meanwhile.

        Returns:
            Number of actions run. Zero when called from inside a drain.
        """
        if self._draining:
            return 0

        self._draining = True
        count = 0
        try:
            while self._pending:
                _, _, pending = heapq.heappop(self._pending)
                count += 1
                try:
                    pending.action()
                except Exception:
                    logger.exception(f"Deferred action failed: {pending.description}")
        finally:
            self._draining = False

        return count

    def pending(self) -> list[PendingAction]:
        """Return queued actions in the order they will run."""
        return [entry[2] for entry in sorted(self._pending)]

    def __len__(self) -> int:
        return len(self._pending)
