"""File watching for settings reloads and compile-on-change.

- ConfigWatcher tells the policy source when its settings file changed
- FileChangeWatcher scans directories for created, modified and deleted files
- SourceWatcher compiles changed sources through the compile-and-swap engine
"""

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from autocompile.engine.swap import CompileOutcome, CompileSwapEngine
from autocompile.events import EventBus, EventType
from autocompile.policy.filter import recognized_suffixes

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = [
    "__pycache__",
    ".git",
    ".venv",
    ".tox",
    "*.egg-info",
]


@dataclass
class FileChange:
    """Represents a detected file change."""

    path: Path
    change_type: str  # "modified", "created", "deleted"
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ConfigWatcher:
    """Watches a configuration file for changes.

    Uses modification time to detect changes, with optional
    content hash for additional verification.
    """

    def __init__(self, path: str | Path, use_hash: bool = False):
        self.path = Path(path)
        self.use_hash = use_hash
        self._last_mtime: float = 0
        self._last_hash: str | None = None

        if self.path.exists():
            self._last_mtime = self.path.stat().st_mtime
            if self.use_hash:
                self._last_hash = self._compute_hash()

    def _compute_hash(self) -> str | None:
        if not self.path.exists():
            return None
        return hashlib.sha256(self.path.read_bytes()).hexdigest()

    def check_changed(self) -> bool:
        """Check if the config file has changed.

        Returns:
            True if file has been modified since last check.
        """
        if not self.path.exists():
            return False

        mtime = self.path.stat().st_mtime
        if mtime <= self._last_mtime:
            return False
        self._last_mtime = mtime

        if self.use_hash:
            new_hash = self._compute_hash()
            if new_hash == self._last_hash:
                return False
            self._last_hash = new_hash

        return True


class FileChangeWatcher:
    """Watches directories for file changes.

    Compares content hashes between scans, so touching a file without
    changing it is not reported.
    """

    def __init__(
        self,
        watch_dirs: list[str | Path],
        patterns: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
    ):
        self.watch_dirs = [Path(d) for d in watch_dirs]
        self.patterns = patterns or [f"*{suffix}" for suffix in recognized_suffixes()]
        self.ignore_patterns = ignore_patterns or list(DEFAULT_IGNORE_PATTERNS)

        self._file_states: dict[Path, str] = {}  # path -> content hash
        self._initialized = False

    def _should_ignore(self, path: Path) -> bool:
        return any(
            part == pattern or Path(part).match(pattern)
            for part in path.parts
            for pattern in self.ignore_patterns
        )

    def _matches_pattern(self, path: Path) -> bool:
        return any(path.match(pattern) for pattern in self.patterns)

    def _scan_files(self) -> dict[Path, str]:
        files: dict[Path, str] = {}

        for watch_dir in self.watch_dirs:
            if not watch_dir.exists():
                continue

            for path in watch_dir.rglob("*"):
                if not path.is_file():
                    continue
                if self._should_ignore(path.relative_to(watch_dir)):
                    continue
                if not self._matches_pattern(path):
                    continue

                try:
                    files[path] = hashlib.sha256(path.read_bytes()).hexdigest()
                except OSError as e:
                    logger.debug(f"Error scanning {path}: {e}")

        return files

    def initialize(self) -> None:
        """Record the current state of the watched directories."""
        self._file_states = self._scan_files()
        self._initialized = True
        logger.info(f"Watching {len(self._file_states)} files")

    def detect_changes(self) -> list[FileChange]:
        """Detect changes since last scan.

        Returns:
            List of FileChange objects. Empty on the first call, which only
            records the initial state.
        """
        if not self._initialized:
            self.initialize()
            return []

        current_files = self._scan_files()
        changes: list[FileChange] = []

        for path, file_hash in current_files.items():
            old_hash = self._file_states.get(path)
            if old_hash is None:
                changes.append(FileChange(path=path, change_type="created"))
            elif file_hash != old_hash:
                changes.append(FileChange(path=path, change_type="modified"))

        for path in self._file_states:
            if path not in current_files:
                changes.append(FileChange(path=path, change_type="deleted"))

        self._file_states = current_files
        return changes

    async def watch_loop(
        self,
        callback: Callable[[list[FileChange]], Awaitable[None]],
        poll_interval: float = 2.0,
        debounce_seconds: float = 1.0,
    ) -> None:
        """Run a continuous watch loop.

        Args:
            callback: Async function to call with list of changes.
            poll_interval: Seconds between directory scans.
            debounce_seconds: Seconds to wait for additional changes before triggering.
        """
        self.initialize()
        pending_changes: list[FileChange] = []
        last_change_time: datetime | None = None

        while True:
            changes = self.detect_changes()

            if changes:
                pending_changes.extend(changes)
                last_change_time = datetime.now(UTC)

            if (
                pending_changes
                and last_change_time
                and (datetime.now(UTC) - last_change_time).total_seconds() > debounce_seconds
            ):
                logger.info(f"Detected {len(pending_changes)} file changes")
                await callback(pending_changes)
                pending_changes = []
                last_change_time = None

            await asyncio.sleep(poll_interval)


class SourceWatcher:
    """Compiles source files when they change on disk.

    Each created or modified file goes through the engine, so the policy
    applies and a compiled file is swapped into its loaded module by the
    engine's artifact loader.
    """

    def __init__(
        self,
        watch_dirs: list[str | Path],
        engine: CompileSwapEngine,
        bus: EventBus | None = None,
    ):
        self.engine = engine
        self.bus = bus
        self.watcher = FileChangeWatcher(watch_dirs)

    def process_changes(self, changes: list[FileChange]) -> dict[Path, CompileOutcome]:
        """Compile every created or modified file among the changes."""
        outcomes: dict[Path, CompileOutcome] = {}
        for change in changes:
            if change.change_type == "deleted":
                continue
            if self.bus is not None:
                self.bus.emit(EventType.SOURCE_CHANGED, path=change.path, data={"change": change.change_type})
            outcomes[change.path] = self.engine.compile_if_eligible(change.path)
        return outcomes

    def poll(self) -> dict[Path, CompileOutcome]:
        """Scan once and compile what changed."""
        return self.process_changes(self.watcher.detect_changes())

    async def watch_loop(self, poll_interval: float = 2.0, debounce_seconds: float = 1.0) -> None:
        """Compile changed sources until cancelled."""

        async def on_changes(changes: list[FileChange]) -> None:
            self.process_changes(changes)

        await self.watcher.watch_loop(on_changes, poll_interval, debounce_seconds)
