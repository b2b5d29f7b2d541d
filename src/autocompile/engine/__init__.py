"""Compiling loaded sources and swapping in their artifacts."""

from autocompile.engine.compiler import Compiler, PyCompileCompiler
from autocompile.engine.swap import CompileOutcome, CompileResult, CompileSwapEngine

__all__ = [
    "CompileOutcome",
    "CompileResult",
    "CompileSwapEngine",
    "Compiler",
    "PyCompileCompiler",
]
