"""Exception types raised across autocompile."""

from pathlib import Path


class AutocompileError(Exception):
    """Base class for autocompile errors."""


class CompileError(AutocompileError):
    """Raised when a source file cannot be compiled to an artifact."""

    def __init__(self, path: str | Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot compile {path}: {reason}")


class ReloadError(AutocompileError):
    """Raised when a compiled artifact cannot be loaded into its module."""

    def __init__(self, path: str | Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot load artifact {path}: {reason}")


class ConfigurationError(AutocompileError):
    """Raised when a settings file cannot be read or validated."""

    def __init__(self, path: str | Path | None, reason: str):
        self.path = Path(path) if path is not None else None
        self.reason = reason
        where = f" in {path}" if path is not None else ""
        super().__init__(f"Invalid configuration{where}: {reason}")
