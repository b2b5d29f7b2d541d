"""Process-wide enable/disable of compile-on-load.

    import autocompile

    autocompile.enable()   # modules imported from now on are compiled and swapped
    autocompile.disable()

The first call builds a runtime from the settings file found in the
working directory (see autocompile.policy.settings). configure() replaces
it with explicit settings.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from autocompile.engine.compiler import PyCompileCompiler
from autocompile.engine.swap import CompileSwapEngine
from autocompile.events import event_bus
from autocompile.host.artifacts import ImportArtifactLoader
from autocompile.host.deferred import DeferredQueue
from autocompile.host.dispatch import LoadHost
from autocompile.host.imports import ImportBridge
from autocompile.interceptor import LoadInterceptor
from autocompile.policy.filter import PolicyConfig
from autocompile.policy.settings import (
    PolicySource,
    Settings,
    find_config_file,
    load_settings,
    policy_from_settings,
)

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything compile-on-load needs in one process."""

    settings: Settings
    policy: PolicyConfig
    host: LoadHost
    queue: DeferredQueue
    bridge: ImportBridge
    engine: CompileSwapEngine
    interceptor: LoadInterceptor


_runtime: Runtime | None = None


def _build_runtime(
    settings: Settings | None = None,
    config_path: str | Path | None = None,
    bootstrap_file: str | Path | None = None,
) -> Runtime:
    path = Path(config_path) if config_path is not None else find_config_file()
    if settings is None:
        settings = load_settings(path)

    policy = policy_from_settings(settings, bootstrap_file)
    host = LoadHost()
    queue = DeferredQueue()
    loader = ImportArtifactLoader(host, queue, bus=event_bus)
    engine = CompileSwapEngine(
        policy,
        PyCompileCompiler(),
        loader,
        bus=event_bus,
        history_limit=settings.history_limit,
    )
    source = PolicySource(path, policy, bootstrap_file) if path is not None else None

    return Runtime(
        settings=settings,
        policy=policy,
        host=host,
        queue=queue,
        bridge=ImportBridge(host, queue),
        engine=engine,
        interceptor=LoadInterceptor(host, engine, policy_source=source, bus=event_bus),
    )


def get_runtime() -> Runtime:
    """Get the process runtime, building it on first use."""
    global _runtime
    if _runtime is None:
        _runtime = _build_runtime()
    return _runtime


def configure(
    settings: Settings | None = None,
    config_path: str | Path | None = None,
    bootstrap_file: str | Path | None = None,
) -> Runtime:
    """Rebuild the process runtime.

    Args:
        settings: Settings to use. Read from config_path (or the searched
            settings file) when omitted.
        config_path: Settings file, also watched for changes while enabled.
        bootstrap_file: The process's entry file, never compiled.

    Raises:
        RuntimeError: If interception is enabled.
        ConfigurationError: If the settings file is invalid.
    """
    global _runtime
    if is_enabled():
        raise RuntimeError("Disable interception before reconfiguring")
    _runtime = _build_runtime(settings, config_path, bootstrap_file)
    return _runtime


def get_interceptor() -> LoadInterceptor:
    return get_runtime().interceptor


def get_policy() -> PolicyConfig:
    """The shared policy. Changes apply to the next load."""
    return get_runtime().policy


def is_enabled() -> bool:
    return _runtime is not None and _runtime.interceptor.is_active


def enable() -> bool:
    """Hook into imports and compile already-loaded modules.

    Reloads of compiled modules are queued; they run when the next import
    finishes, on the running event loop, or on run_pending().

    Returns:
        False if already enabled.
    """
    runtime = get_runtime()
    runtime.bridge.install()
    return runtime.interceptor.enable()


def disable() -> bool:
    """Stop compiling imported modules.

    Returns:
        False if not enabled.
    """
    if _runtime is None:
        return False
    disabled = _runtime.interceptor.disable()
    _runtime.bridge.uninstall()
    return disabled


def run_pending() -> int:
    """Run queued artifact reloads now.

    Returns:
        Number of reloads run.
    """
    if _runtime is None:
        return 0
    return _runtime.queue.run_pending()


def shutdown() -> None:
    """Disable interception and discard the runtime."""
    global _runtime
    disable()
    _runtime = None
