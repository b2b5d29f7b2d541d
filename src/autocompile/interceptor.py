"""Load interceptor: compiles files as the host finishes loading them.

The interceptor registers one observer with the host, ahead of every
other observer and after-load action. For a file the engine compiles, the
observer reports the load as handled. The host then skips the file's
after-load actions, which run once the compiled artifact is loaded.
Files that are skipped or fail to compile pass through unchanged.
"""

import logging
from typing import Final

from autocompile.engine.swap import CompileOutcome, CompileSwapEngine
from autocompile.events import EventBus, EventType
from autocompile.host.dispatch import HookResult, LoadEvent, LoadHost
from autocompile.policy.settings import PolicySource

logger = logging.getLogger(__name__)

# Observers run in ascending priority; nothing should run before this one
INTERCEPTOR_PRIORITY: Final = -100


class LoadInterceptor:
    """Installs compile-on-load into a LoadHost."""

    def __init__(
        self,
        host: LoadHost,
        engine: CompileSwapEngine,
        policy_source: PolicySource | None = None,
        bus: EventBus | None = None,
    ):
        self.host = host
        self.engine = engine
        self.policy_source = policy_source
        self.bus = bus
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def _emit(self, event_type: EventType, **data) -> None:
        if self.bus is not None:
            self.bus.emit(event_type, data=data)

    def enable(self) -> bool:
        """Start intercepting loads and compile what is already loaded.

        Returns:
            False if interception was already enabled.
        """
        if self._active:
            logger.debug("Load interception already enabled")
            return False

        self.host.add_observer(self.on_load_complete, priority=INTERCEPTOR_PRIORITY)
        self._active = True
        logger.info("Load interception enabled")

        compiled = self.sweep()
        self._emit(EventType.INTERCEPTION_ENABLED, swept=compiled)
        return True

    def disable(self) -> bool:
        """Stop intercepting loads. Reloads already queued still run.

        Returns:
            False if interception was not enabled.
        """
        if not self._active:
            logger.debug("Load interception already disabled")
            return False

        self.host.remove_observer(self.on_load_complete)
        self._active = False
        logger.info("Load interception disabled")
        self._emit(EventType.INTERCEPTION_DISABLED)
        return True

    def sweep(self) -> int:
        """Compile files that were loaded from source before enabling.

        Returns:
            Number of files compiled.
        """
        seen: set[str] = set()
        compiled = 0

        for entry in self.host.history.snapshot():
            if not entry.interpreted or entry.source_path in seen:
                continue
            seen.add(entry.source_path)
            if self.engine.compile_if_eligible(entry.source_path) is CompileOutcome.COMPILED:
                compiled += 1

        logger.debug(f"Swept {len(seen)} loaded files, compiled {compiled}")
        return compiled

    def on_load_complete(self, event: LoadEvent) -> HookResult:
        """Observer called by the host after each load."""
        if self.policy_source is not None:
            self.policy_source.refresh()

        outcome = self.engine.compile_if_eligible(event.path, event.module_name)
        if outcome is CompileOutcome.COMPILED:
            return HookResult.HANDLED
        return HookResult.PASS_THROUGH
