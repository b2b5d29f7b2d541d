"""Load-completion dispatch for the host process.

When a file finishes loading the host runs its observers in priority
order. An observer that returns HookResult.HANDLED ends the dispatch: the
remaining observers and every after-load action for that file are skipped
for this load. They run when the file loads again, typically from its
compiled artifact.
"""

import itertools
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from autocompile.host.history import ModuleLoadHistory

logger = logging.getLogger(__name__)


class HookResult(str, Enum):
    """What an observer did with a load event."""

    HANDLED = "handled"  # Suppress the rest of this load's completion actions
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class LoadEvent:
    """A file that has just finished loading."""

    path: str | None
    module_name: str | None = None
    source_path: str | None = None  # Source behind an artifact load
    artifact_path: str | None = None

    @property
    def source(self) -> str | None:
        return self.source_path or self.path


LoadObserver = Callable[[LoadEvent], HookResult | None]
AfterLoadAction = Callable[[], Any]
AfterLoadCallback = Callable[[LoadEvent], Any]


def _name(observer: Callable[..., Any]) -> str:
    return getattr(observer, "__qualname__", repr(observer))


class LoadHost:
    """The process's load pipeline: history, observers and after-load actions."""

    def __init__(self, history: ModuleLoadHistory | None = None):
        self.history = history if history is not None else ModuleLoadHistory()
        self._observers: list[tuple[int, int, LoadObserver]] = []
        self._sequence = itertools.count()
        self._after_load: dict[str, list[AfterLoadAction]] = defaultdict(list)
        self._after_load_callbacks: list[AfterLoadCallback] = []

    @property
    def observers(self) -> list[LoadObserver]:
        """Registered observers in dispatch order."""
        return [entry[2] for entry in sorted(self._observers, key=lambda e: (e[0], e[1]))]

    def add_observer(self, observer: LoadObserver, priority: int = 0) -> bool:
        """Register an observer. Lower priorities run first.

        Returns:
            False if the observer was already registered.
        """
        if any(existing == observer for _, _, existing in self._observers):
            logger.debug(f"Observer {_name(observer)} already registered")
            return False
        self._observers.append((priority, next(self._sequence), observer))
        return True

    def remove_observer(self, observer: LoadObserver) -> bool:
        """Unregister an observer.

        Returns:
            False if the observer was not registered.
        """
        remaining = [entry for entry in self._observers if entry[2] != observer]
        removed = len(remaining) != len(self._observers)
        self._observers = remaining
        return removed

    def add_after_load(self, module_name: str, action: AfterLoadAction) -> None:
        """Run an action every time a module finishes loading."""
        self._after_load[module_name].append(action)

    def add_after_load_callback(self, callback: AfterLoadCallback) -> None:
        """Run a callback with the event after every completed load."""
        self._after_load_callbacks.append(callback)

    def complete_load(self, event: LoadEvent) -> HookResult:
        """Dispatch a load-completion event.

        Returns:
            HANDLED if an observer took over the event, PASS_THROUGH if the
            after-load actions ran.
        """
        if event.source is not None:
            self.history.record(event.source, event.artifact_path)

        for observer in self.observers:
            if observer(event) is HookResult.HANDLED:
                logger.debug(f"Load of {event.path} handled by {_name(observer)}")
                return HookResult.HANDLED

        if event.module_name is not None:
            for action in list(self._after_load.get(event.module_name, ())):
                action()

        for callback in list(self._after_load_callbacks):
            callback(event)

        return HookResult.PASS_THROUGH
