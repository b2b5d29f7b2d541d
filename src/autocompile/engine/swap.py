"""Compile-and-swap: compile an eligible source, then reload its artifact.

Flow for each file:
1. Check eligibility (no side effects when skipped)
2. Notify that compilation started
3. Run the compiler; any failure is reported and contained
4. Hand the artifact to the loader at the lowest priority, without waiting

Every call compiles again. There is no cache keyed by content or mtime.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from autocompile.engine.compiler import Compiler
from autocompile.errors import CompileError
from autocompile.events import EventBus, EventType
from autocompile.host.artifacts import ArtifactLoader
from autocompile.host.deferred import LoadPriority
from autocompile.policy.filter import PolicyConfig, is_eligible

logger = logging.getLogger(__name__)


class CompileOutcome(str, Enum):
    """Result of compile_if_eligible()."""

    SKIPPED = "skipped"
    COMPILED = "compiled"
    COMPILE_FAILED = "compile_failed"


@dataclass
class CompileResult:
    """Record of one compilation attempt."""

    path: Path
    outcome: CompileOutcome
    artifact_path: Path | None = None
    error_message: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class CompileSwapEngine:
    """Compiles eligible files and schedules their artifacts for loading."""

    def __init__(
        self,
        config: PolicyConfig,
        compiler: Compiler,
        loader: ArtifactLoader,
        bus: EventBus | None = None,
        history_limit: int = 100,
    ):
        self.config = config
        self.compiler = compiler
        self.loader = loader
        self.bus = bus
        self._compile_history: deque[CompileResult] = deque(maxlen=history_limit)

    def _emit(self, event_type: EventType, path: Path, **data) -> None:
        if self.bus is not None:
            self.bus.emit(event_type, path=path, data=data)

    def _record(self, result: CompileResult) -> CompileOutcome:
        self._compile_history.append(result)
        return result.outcome

    def _fail(self, source: Path, error: Exception) -> CompileOutcome:
        logger.warning(f"Failed to compile {source}: {error}")
        self._emit(EventType.COMPILE_FAILED, source, error=str(error))
        return self._record(
            CompileResult(
                path=source,
                outcome=CompileOutcome.COMPILE_FAILED,
                error_message=str(error),
            )
        )

    def compile_if_eligible(
        self,
        path: str | Path | None,
        module_name: str | None = None,
    ) -> CompileOutcome:
        """Compile a file and schedule its artifact if the policy allows it.

        Never raises for compiler or scheduling failures; those are
        reported and returned as COMPILE_FAILED.

        Args:
            path: Source file that was loaded, or None when unknown.
            module_name: Module the file was loaded as, handed to the loader
                so the artifact replaces that module.

        Returns:
            SKIPPED, COMPILED or COMPILE_FAILED.
        """
        if not is_eligible(path, self.config):
            logger.debug(f"Not compiling {path}")
            return CompileOutcome.SKIPPED

        source = Path(path)
        logger.info(f"Compiling {source}")
        self._emit(EventType.COMPILE_STARTED, source)

        try:
            artifact = self.compiler.compile(source)
            if artifact is None:
                raise CompileError(source, "compiler produced no artifact")
        except Exception as e:
            return self._fail(source, e)

        artifact = Path(artifact)
        try:
            self.loader.load_async(artifact, LoadPriority.DEFERRED, module_name=module_name)
        except Exception as e:
            return self._fail(source, e)

        self._emit(EventType.COMPILE_SUCCEEDED, source, artifact=str(artifact))
        return self._record(
            CompileResult(
                path=source,
                outcome=CompileOutcome.COMPILED,
                artifact_path=artifact,
            )
        )

    def get_compile_history(self, limit: int = 10) -> list[CompileResult]:
        """Get recent compilation results.

        Args:
            limit: Maximum number of results to return.

        Returns:
            List of recent CompileResults, oldest first.
        """
        return list(self._compile_history)[-limit:]
