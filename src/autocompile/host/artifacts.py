"""Loading compiled artifacts into already-imported modules."""

import importlib.machinery
import importlib.util
import logging
import os
import sys
from collections.abc import MutableMapping
from pathlib import Path
from types import ModuleType
from typing import Protocol

from autocompile.errors import ReloadError
from autocompile.events import EventBus, EventType
from autocompile.host.deferred import DeferredQueue, LoadPriority
from autocompile.host.dispatch import LoadEvent, LoadHost

logger = logging.getLogger(__name__)


class ArtifactLoader(Protocol):
    """Loads a compiled artifact without blocking the caller."""

    def load_async(
        self,
        artifact_path: Path,
        priority: LoadPriority,
        module_name: str | None = None,
    ) -> None: ...


def _normalize(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


class ImportArtifactLoader:
    """Re-executes modules from their bytecode artifacts.

    load_async() queues the work on the DeferredQueue; load_now() does it.
    The artifact must sit in the __pycache__ location that
    importlib.util.source_from_cache() maps back to its source. The module
    is the one named by the load that was compiled; without a name, the
    first loaded module with that source file is used.
    """

    def __init__(
        self,
        host: LoadHost,
        queue: DeferredQueue,
        modules: MutableMapping[str, ModuleType] | None = None,
        bus: EventBus | None = None,
    ):
        self.host = host
        self.queue = queue
        self.modules = modules if modules is not None else sys.modules
        self.bus = bus

    def _emit(self, event_type: EventType, path: Path, **data) -> None:
        if self.bus is not None:
            self.bus.emit(event_type, path=path, data=data)

    def load_async(
        self,
        artifact_path: Path,
        priority: LoadPriority = LoadPriority.DEFERRED,
        module_name: str | None = None,
    ) -> None:
        artifact = Path(artifact_path)
        self.queue.schedule(
            lambda: self.load_now(artifact, module_name),
            priority,
            description=f"load {module_name or artifact}",
        )
        self._emit(EventType.RELOAD_REQUESTED, artifact, priority=priority.value, module=module_name)

    def find_module(self, artifact_path: Path, module_name: str | None = None) -> tuple[str, ModuleType]:
        """Find the loaded module compiled into an artifact.

        Args:
            artifact_path: Bytecode file in a __pycache__ directory.
            module_name: Name the module was imported under, if known. Used
                when that module comes from the artifact's source.

        Returns:
            Tuple of (source path, module).

        Raises:
            ReloadError: If no loaded module comes from the artifact's source.
        """
        try:
            source = importlib.util.source_from_cache(str(artifact_path))
        except ValueError as e:
            raise ReloadError(artifact_path, f"not a bytecode cache path: {e}") from e

        target = _normalize(source)

        named = self.modules.get(module_name) if module_name is not None else None
        named_file = getattr(named, "__file__", None)
        if named_file and _normalize(named_file) == target:
            return source, named

        for module in list(self.modules.values()):
            module_file = getattr(module, "__file__", None)
            if module_file and _normalize(module_file) == target:
                return source, module

        raise ReloadError(artifact_path, f"no loaded module comes from {source}")

    def load_now(self, artifact_path: Path, module_name: str | None = None) -> ModuleType:
        """Execute an artifact in place of its module's current code.

        Raises:
            ReloadError: If the module or artifact is missing, or execution fails.
        """
        artifact = Path(artifact_path)
        source, module = self.find_module(artifact, module_name)

        if not artifact.is_file():
            raise ReloadError(artifact, "artifact does not exist")

        loader = importlib.machinery.SourcelessFileLoader(module.__name__, str(artifact))
        try:
            loader.exec_module(module)
        except Exception as e:
            self._emit(EventType.RELOAD_FAILED, artifact, error=str(e))
            raise ReloadError(artifact, f"{type(e).__name__}: {e}") from e

        logger.info(f"Loaded {module.__name__} from {artifact}")
        self.host.complete_load(
            LoadEvent(
                path=str(artifact),
                module_name=module.__name__,
                source_path=source,
                artifact_path=str(artifact),
            )
        )
        self._emit(EventType.RELOAD_COMPLETED, artifact, module=module.__name__)
        return module
