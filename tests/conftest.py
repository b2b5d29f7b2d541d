"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

from autocompile import api
from autocompile.engine.swap import CompileSwapEngine
from autocompile.errors import CompileError
from autocompile.events import Event, EventBus, EventType
from autocompile.host.deferred import DeferredQueue, LoadPriority
from autocompile.host.dispatch import LoadEvent, LoadHost
from autocompile.policy.filter import PolicyConfig


class FakeCompiler:
    """Compiler double: maps foo.el to foo.elc, fails for chosen paths."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.calls: list[Path] = []

    def compile(self, path: Path) -> Path:
        self.calls.append(Path(path))
        if str(path) in self.failing:
            raise CompileError(path, "invalid read syntax")
        return Path(f"{path}c")


class RecordingLoader:
    """Artifact loader double that only records requests."""

    def __init__(self) -> None:
        self.requests: list[tuple[Path, LoadPriority]] = []
        self.module_names: list[str | None] = []

    def load_async(self, artifact_path: Path, priority: LoadPriority, module_name: str | None = None) -> None:
        self.requests.append((Path(artifact_path), priority))
        self.module_names.append(module_name)


class HostReloader:
    """Artifact loader double that replays the artifact load on a host.

    The reload is queued, and running the queue fires the load-completion
    event a real artifact load would.
    """

    def __init__(self, host: LoadHost, queue: DeferredQueue):
        self.host = host
        self.queue = queue
        self.loaded: list[Path] = []

    def load_async(self, artifact_path: Path, priority: LoadPriority, module_name: str | None = None) -> None:
        self.queue.schedule(lambda: self._load(Path(artifact_path), module_name), priority)

    def _load(self, artifact: Path, module_name: str | None) -> None:
        self.loaded.append(artifact)
        source = str(artifact)[:-1]
        self.host.complete_load(
            LoadEvent(
                path=str(artifact),
                module_name=module_name or Path(source).stem,
                source_path=source,
                artifact_path=str(artifact),
            )
        )


class EventRecorder:
    """Collects events published on a bus."""

    def __init__(self, bus: EventBus):
        self.events: list[Event] = []
        bus.add_callback(self.events.append)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [event for event in self.events if event.type == event_type]


@pytest.fixture
def policy() -> PolicyConfig:
    """Policy recognizing .el sources, with no exclusions."""
    return PolicyConfig(suffixes=lambda: [".el"])


@pytest.fixture
def bus() -> EventBus:
    """Create a fresh event bus for each test."""
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def compiler() -> FakeCompiler:
    return FakeCompiler(failing={"/home/u/lib/broken.el"})


@pytest.fixture
def loader() -> RecordingLoader:
    return RecordingLoader()


@pytest.fixture
def engine(policy, compiler, loader, bus) -> CompileSwapEngine:
    return CompileSwapEngine(policy, compiler, loader, bus=bus)


@pytest.fixture
def module_dir(tmp_path: Path, monkeypatch):
    """Importable directory for throwaway modules, cleaned up afterwards."""
    directory = tmp_path / "modules"
    directory.mkdir()
    monkeypatch.syspath_prepend(str(directory))
    before = set(sys.modules)
    yield directory
    for name in set(sys.modules) - before:
        module_file = getattr(sys.modules[name], "__file__", None) or ""
        if module_file.startswith(str(directory)):
            del sys.modules[name]


@pytest.fixture
def clean_runtime():
    """Reset the process-wide runtime around a test."""
    api.shutdown()
    yield
    api.shutdown()
