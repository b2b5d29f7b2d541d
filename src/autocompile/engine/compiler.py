"""Compiler boundary: source file in, artifact path out."""

import importlib.util
import logging
import py_compile
from pathlib import Path
from typing import Protocol

from autocompile.errors import CompileError

logger = logging.getLogger(__name__)


class Compiler(Protocol):
    """Turns a source file into a loadable artifact.

    Implementations raise on failure; any exception counts as a failed
    compilation.
    """

    def compile(self, path: Path) -> Path: ...


class PyCompileCompiler:
    """Byte-compiles source files with py_compile.

    Artifacts go to the standard __pycache__ location, so the import
    system and ImportArtifactLoader can map them back to their sources.
    """

    def __init__(
        self,
        optimize: int = -1,
        invalidation_mode: py_compile.PycInvalidationMode | None = None,
    ):
        self.optimize = optimize
        self.invalidation_mode = invalidation_mode

    def artifact_path(self, path: Path) -> Path:
        """Return where the artifact for a source file is written."""
        if self.optimize >= 0:
            optimization = self.optimize if self.optimize >= 1 else ""
            return Path(importlib.util.cache_from_source(str(path), optimization=optimization))
        return Path(importlib.util.cache_from_source(str(path)))

    def compile(self, path: Path) -> Path:
        """Compile a source file.

        Raises:
            CompileError: If the source has errors or cannot be read or written.
        """
        source = Path(path)
        cfile = self.artifact_path(source)

        try:
            written = py_compile.compile(
                str(source),
                cfile=str(cfile),
                doraise=True,
                optimize=self.optimize,
                invalidation_mode=self.invalidation_mode,
            )
        except py_compile.PyCompileError as e:
            raise CompileError(source, e.msg.strip()) from e
        except (OSError, ValueError) as e:
            raise CompileError(source, str(e)) from e

        if written is None:
            raise CompileError(source, "no artifact written")

        logger.debug(f"Wrote {written}")
        return Path(written)
