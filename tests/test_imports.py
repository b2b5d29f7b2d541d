"""Tests for compile-on-import through the real import system."""

import asyncio
import importlib
import importlib.util
import sys
import types
from pathlib import Path

import pytest

from autocompile.engine.compiler import PyCompileCompiler
from autocompile.engine.swap import CompileSwapEngine
from autocompile.errors import ReloadError
from autocompile.events import EventBus, EventType
from autocompile.host.artifacts import ImportArtifactLoader
from autocompile.host.deferred import DeferredQueue
from autocompile.host.dispatch import LoadHost
from autocompile.host.imports import ImportBridge, ObservedSourceLoader
from autocompile.interceptor import LoadInterceptor
from autocompile.policy.filter import PolicyConfig

from conftest import EventRecorder

MODULE_SOURCE = 'RUNS = globals().get("RUNS", 0) + 1\n'


class Stack:
    """Wires the real components together for one test."""

    def __init__(self, root: Path):
        self.host = LoadHost()
        self.queue = DeferredQueue()
        self.bus = EventBus()
        self.recorder = EventRecorder(self.bus)
        self.policy = PolicyConfig(predicate=lambda path: path.startswith(str(root)))
        self.loader = ImportArtifactLoader(self.host, self.queue, bus=self.bus)
        self.engine = CompileSwapEngine(self.policy, PyCompileCompiler(), self.loader, bus=self.bus)
        self.interceptor = LoadInterceptor(self.host, self.engine, bus=self.bus)
        self.bridge = ImportBridge(self.host, self.queue)

    def start(self) -> None:
        self.bridge.install()
        self.interceptor.enable()

    def stop(self) -> None:
        self.interceptor.disable()
        self.bridge.uninstall()


@pytest.fixture
def stack(tmp_path: Path, module_dir: Path):
    stack = Stack(tmp_path)
    yield stack
    stack.stop()


def write_module(directory: Path, name: str, source: str = MODULE_SOURCE) -> Path:
    path = directory / f"{name}.py"
    path.write_text(source)
    importlib.invalidate_caches()
    return path


class TestImportBridge:
    """Tests for installing the import hook."""

    def test_install_is_idempotent(self, stack: Stack):
        assert stack.bridge.install()
        assert not stack.bridge.install()
        assert sys.meta_path[0] is stack.bridge.finder
        assert sys.meta_path.count(stack.bridge.finder) == 1

        assert stack.bridge.uninstall()
        assert not stack.bridge.uninstall()
        assert stack.bridge.finder not in sys.meta_path

    def test_install_seeds_history(self, stack: Stack):
        stack.bridge.install()
        assert len(stack.host.history) > 0

    def test_source_modules_get_observed_loader(self, stack: Stack, module_dir: Path):
        write_module(module_dir, "observed_mod")
        stack.bridge.install()

        module = importlib.import_module("observed_mod")

        assert isinstance(module.__spec__.loader, ObservedSourceLoader)
        assert module.__file__ == str(module_dir / "observed_mod.py")

    def test_unknown_module_is_not_found(self, stack: Stack):
        stack.bridge.install()

        assert stack.bridge.finder.find_spec("no_such_module_anywhere", None) is None
        with pytest.raises(ModuleNotFoundError):
            importlib.import_module("no_such_module_anywhere")


class TestCompileOnImport:
    """Tests for the full import, compile and swap cycle."""

    def test_import_compiles_and_reloads_artifact(self, stack: Stack, module_dir: Path):
        source = write_module(module_dir, "swap_mod")
        ran: list[str] = []
        stack.host.add_after_load("swap_mod", lambda: ran.append("swap_mod"))
        stack.start()

        module = importlib.import_module("swap_mod")

        # Executed from source, then again from the compiled artifact
        assert module.RUNS == 2
        assert ran == ["swap_mod"]
        assert Path(importlib.util.cache_from_source(str(source))).is_file()

        seen = [event.type for event in stack.recorder.events if event.path == str(source)]
        assert seen == [EventType.COMPILE_STARTED, EventType.COMPILE_SUCCEEDED]
        assert len(stack.recorder.of_type(EventType.RELOAD_COMPLETED)) == 1

    def test_excluded_module_runs_once(self, stack: Stack, module_dir: Path):
        write_module(module_dir, "plain_mod")
        stack.policy.exclude_patterns.append(r"plain_mod\.py$")
        ran: list[str] = []
        stack.host.add_after_load("plain_mod", lambda: ran.append("plain_mod"))
        stack.start()

        module = importlib.import_module("plain_mod")

        assert module.RUNS == 1
        assert ran == ["plain_mod"]
        assert stack.recorder.of_type(EventType.COMPILE_STARTED) == []

    def test_nested_imports_reload_after_outermost(self, stack: Stack, module_dir: Path):
        """Reloads wait until the outermost import has finished."""
        write_module(module_dir, "inner_mod")
        write_module(
            module_dir,
            "outer_mod",
            "import inner_mod\n"
            'INNER_RUNS_AT_IMPORT = globals().get("INNER_RUNS_AT_IMPORT", inner_mod.RUNS)\n' + MODULE_SOURCE,
        )
        stack.start()

        outer = importlib.import_module("outer_mod")
        inner = sys.modules["inner_mod"]

        assert outer.INNER_RUNS_AT_IMPORT == 1
        assert inner.RUNS == 2
        assert outer.RUNS == 2

    def test_failed_outer_import_still_reloads_nested(self, stack: Stack, module_dir: Path):
        """A nested module is swapped even when the import around it raises."""
        write_module(module_dir, "nested_ok")
        write_module(module_dir, "outer_broken", "import nested_ok\nraise RuntimeError('outer broke')\n")
        ran: list[str] = []
        stack.host.add_after_load("nested_ok", lambda: ran.append("nested_ok"))
        stack.start()

        with pytest.raises(RuntimeError, match="outer broke"):
            importlib.import_module("outer_broken")

        assert sys.modules["nested_ok"].RUNS == 2
        assert ran == ["nested_ok"]
        assert len(stack.queue) == 0

    def test_same_file_under_two_names(self, stack: Stack, module_dir: Path, monkeypatch):
        """Each name a file is imported under gets its own swap."""
        package = module_dir / "dualpkg"
        package.mkdir()
        (package / "__init__.py").write_text("")
        write_module(package, "dual")
        monkeypatch.syspath_prepend(str(package))
        ran: list[str] = []
        stack.host.add_after_load("dualpkg.dual", lambda: ran.append("dualpkg.dual"))
        stack.host.add_after_load("dual", lambda: ran.append("dual"))
        stack.start()

        packaged = importlib.import_module("dualpkg.dual")
        plain = importlib.import_module("dual")

        assert packaged is not plain
        assert packaged.RUNS == 2
        assert plain.RUNS == 2
        assert ran == ["dualpkg.dual", "dual"]

    def test_after_disable_imports_are_untouched(self, stack: Stack, module_dir: Path):
        write_module(module_dir, "late_mod")
        stack.start()
        stack.interceptor.disable()

        module = importlib.import_module("late_mod")

        assert module.RUNS == 1

    async def test_reload_runs_on_event_loop(self, stack: Stack, module_dir: Path):
        """Inside a running loop the swap happens on the loop's next turn."""
        write_module(module_dir, "async_mod")
        stack.start()

        module = importlib.import_module("async_mod")
        assert module.RUNS == 1

        await asyncio.sleep(0)
        assert module.RUNS == 2


class TestImportArtifactLoader:
    """Tests for ImportArtifactLoader."""

    def test_unknown_artifact_raises(self, stack: Stack, tmp_path: Path):
        artifact = Path(importlib.util.cache_from_source(str(tmp_path / "nobody.py")))

        with pytest.raises(ReloadError):
            stack.loader.find_module(artifact)

    def test_non_cache_path_raises(self, stack: Stack, tmp_path: Path):
        with pytest.raises(ReloadError):
            stack.loader.find_module(tmp_path / "stray.txt")

    def test_failing_artifact_reports_failure(self, stack: Stack, module_dir: Path):
        source = write_module(module_dir, "fragile_mod")
        stack.bridge.install()
        module = importlib.import_module("fragile_mod")

        source.write_text("raise ValueError('broken on reload')\n")
        artifact = PyCompileCompiler().compile(source)

        with pytest.raises(ReloadError):
            stack.loader.load_now(artifact)

        failures = stack.recorder.of_type(EventType.RELOAD_FAILED)
        assert len(failures) == 1
        assert module.RUNS == 1

    def test_named_module_is_reloaded(self, stack: Stack, tmp_path: Path):
        """With one file loaded under two names, the named module is used."""
        source = str(tmp_path / "dual.py")
        packaged = types.ModuleType("pkg.dual")
        packaged.__file__ = source
        plain = types.ModuleType("dual")
        plain.__file__ = source
        loader = ImportArtifactLoader(stack.host, stack.queue, modules={"pkg.dual": packaged, "dual": plain})
        artifact = Path(importlib.util.cache_from_source(source))

        assert loader.find_module(artifact, "dual")[1] is plain
        assert loader.find_module(artifact, "pkg.dual")[1] is packaged
        assert loader.find_module(artifact)[1] is packaged

    def test_name_of_other_file_falls_back_to_path(self, stack: Stack, tmp_path: Path):
        source = str(tmp_path / "widget.py")
        widget = types.ModuleType("widget")
        widget.__file__ = source
        other = types.ModuleType("other")
        other.__file__ = str(tmp_path / "other.py")
        loader = ImportArtifactLoader(stack.host, stack.queue, modules={"other": other, "widget": widget})
        artifact = Path(importlib.util.cache_from_source(source))

        assert loader.find_module(artifact, "other")[1] is widget
        assert loader.find_module(artifact, "missing")[1] is widget
