"""Record of files loaded into the process."""

import importlib.machinery
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import ModuleType


@dataclass(frozen=True)
class HistoryEntry:
    """One completed load."""

    source_path: str
    artifact_path: str | None = None  # Set when the load came from compiled code

    @property
    def interpreted(self) -> bool:
        return self.artifact_path is None


class ModuleLoadHistory:
    """Append-only log of files loaded since the process started."""

    def __init__(self) -> None:
        self._entries: list[HistoryEntry] = []

    def record(self, source_path: str, artifact_path: str | None = None) -> HistoryEntry:
        entry = HistoryEntry(source_path=source_path, artifact_path=artifact_path)
        self._entries.append(entry)
        return entry

    def seed_from_modules(self, modules: Mapping[str, ModuleType]) -> int:
        """Record modules that were loaded before the history existed.

        Modules executed from source count as interpreted; anything else
        with a file (bytecode, extension modules, zip imports) counts as
        already compiled.

        Returns:
            Number of entries added.
        """
        added = 0
        for module in list(modules.values()):
            path = getattr(module, "__file__", None)
            if not path:
                continue
            loader = getattr(module, "__loader__", None)
            if isinstance(loader, importlib.machinery.SourceFileLoader):
                self.record(path)
            else:
                self.record(path, path)
            added += 1
        return added

    def snapshot(self) -> list[HistoryEntry]:
        """Return the entries recorded so far."""
        return list(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._entries)
