"""Bridge between the import system and the load host.

A finder placed first on sys.meta_path asks the remaining finders for a
spec. When the module will be executed from source, its loader is swapped
for one that reports the completed load to the LoadHost.
"""

import importlib.abc
import importlib.machinery
import logging
import sys
from types import ModuleType

from autocompile.host.deferred import DeferredQueue, running_loop
from autocompile.host.dispatch import LoadEvent, LoadHost

logger = logging.getLogger(__name__)


class ObservedSourceLoader(importlib.machinery.SourceFileLoader):
    """Source loader that reports each completed execution."""

    def __init__(self, fullname: str, path: str, bridge: "ImportBridge"):
        super().__init__(fullname, path)
        self.bridge = bridge

    def exec_module(self, module: ModuleType) -> None:
        bridge = self.bridge
        bridge.depth += 1
        try:
            super().exec_module(module)
            bridge.host.complete_load(LoadEvent(path=self.path, module_name=module.__name__))
        finally:
            bridge.depth -= 1
            # Nested imports may have queued reloads even if this one failed
            if bridge.depth == 0:
                bridge.drain()


class InterceptingFinder(importlib.abc.MetaPathFinder):
    """Meta path finder that wraps source loaders of other finders."""

    def __init__(self, bridge: "ImportBridge"):
        self.bridge = bridge

    def find_spec(self, fullname, path, target=None):
        # A miss here is repeated by importlib over the same finders; the
        # extra lookups only happen for modules that do not exist.
        for finder in list(sys.meta_path):
            if finder is self:
                continue
            find_spec = getattr(finder, "find_spec", None)
            if find_spec is None:
                continue
            spec = find_spec(fullname, path, target)
            if spec is not None:
                break
        else:
            return None

        loader = spec.loader
        if type(loader) is importlib.machinery.SourceFileLoader:
            spec.loader = ObservedSourceLoader(loader.name, loader.path, self.bridge)
        return spec


class ImportBridge:
    """Installs the finder and drains deferred work when imports go idle."""

    def __init__(self, host: LoadHost, queue: DeferredQueue):
        self.host = host
        self.queue = queue
        self.depth = 0  # Observed imports currently executing
        self.finder = InterceptingFinder(self)
        self._seeded = False

    @property
    def installed(self) -> bool:
        return self.finder in sys.meta_path

    def install(self) -> bool:
        """Put the finder first on sys.meta_path.

        The first install records every module already in sys.modules in
        the host's history.

        Returns:
            False if it was already installed.
        """
        if self.installed:
            return False

        if not self._seeded:
            added = self.host.history.seed_from_modules(sys.modules)
            self._seeded = True
            logger.debug(f"Seeded load history with {added} modules")

        sys.meta_path.insert(0, self.finder)
        return True

    def uninstall(self) -> bool:
        """Remove the finder. Modules already imported keep their loaders."""
        if not self.installed:
            return False
        sys.meta_path.remove(self.finder)
        return True

    def drain(self) -> int:
        """Run deferred work now, unless an event loop will do it."""
        if running_loop() is not None:
            return 0
        return self.queue.run_pending()
