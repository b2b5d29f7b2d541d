"""The host process's load pipeline and its hooks into importlib."""

from autocompile.host.artifacts import ArtifactLoader, ImportArtifactLoader
from autocompile.host.deferred import DeferredQueue, LoadPriority
from autocompile.host.dispatch import HookResult, LoadEvent, LoadHost
from autocompile.host.history import HistoryEntry, ModuleLoadHistory
from autocompile.host.imports import ImportBridge

__all__ = [
    "ArtifactLoader",
    "DeferredQueue",
    "HistoryEntry",
    "HookResult",
    "ImportArtifactLoader",
    "ImportBridge",
    "LoadEvent",
    "LoadHost",
    "LoadPriority",
    "ModuleLoadHistory",
]
