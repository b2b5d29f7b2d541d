"""Eligibility filter deciding which loaded files get compiled.

A file is eligible when:
- it has a source suffix the import system currently recognizes
- no exclusion matches it (bootstrap file, excluded file endings, patterns)
- the optional user predicate accepts it

The filter has no side effects beyond a warning for a pattern that cannot
be evaluated. Such a pattern counts as non-matching, so a broken exclusion
never blocks compilation.
"""

import importlib.machinery
import logging
import os
import re
import sys
import sysconfig
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PathMatcher = Callable[[str], bool]
ExclusionPattern = str | re.Pattern[str] | PathMatcher

# Name endings of generated files, matched just before the final suffix
GENERATED_MARKERS = ("-autoloads", "-pkg", "_pb2", "_pb2_grpc")

# Interpreter startup files, excluded wherever they live
STARTUP_FILES = ("sitecustomize.py", "usercustomize.py")

# Read-only installation prefixes excluded on every platform
SYSTEM_PREFIXES = ("/usr/", "/opt/")

_reported_patterns: set[str] = set()

# Matchers by id; holding them keeps each id unique
_reported_matchers: dict[int, PathMatcher] = {}


def recognized_suffixes() -> list[str]:
    """Return the source suffixes the import system recognizes right now."""
    return list(importlib.machinery.SOURCE_SUFFIXES)


def system_directories() -> list[str]:
    """Return the interpreter's installation directories."""
    paths = sysconfig.get_paths()
    directories: list[str] = []
    for key in ("stdlib", "platstdlib", "purelib", "platlib"):
        directory = paths.get(key)
        if directory and directory not in directories:
            directories.append(directory)
    return directories


def main_script() -> str | None:
    """Return the file the process was started from, if any."""
    main = sys.modules.get("__main__")
    return getattr(main, "__file__", None)


def default_exclude_patterns() -> list[str]:
    """Build the exclusion patterns of the default policy."""
    patterns = [f"^{re.escape(prefix)}" for prefix in SYSTEM_PREFIXES]

    own_package = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    for directory in [*system_directories(), own_package]:
        patterns.append("^" + re.escape(directory.rstrip(os.sep) + os.sep))

    markers = "|".join(re.escape(marker) for marker in GENERATED_MARKERS)
    patterns.append(rf"(?:{markers})\.[^./\\]+$")
    return patterns


@dataclass
class PolicyConfig:
    """Which files may be compiled when they load.

    The object is shared by reference between the filter, the engine and
    the interceptor. Mutating it, directly or through update(), takes
    effect on the next load event.
    """

    exclude_patterns: list[ExclusionPattern] = field(default_factory=list)

    # Path endings such as "sitecustomize.py" or "pkg/settings.py"
    excluded_files: list[str] = field(default_factory=list)

    bootstrap_file: str | Path | None = None

    # Extra condition a file must satisfy to be compiled
    predicate: PathMatcher | None = None

    suffixes: Callable[[], Iterable[str]] = recognized_suffixes

    def update(self, **changes: Any) -> None:
        """Change policy fields in place.

        List fields keep their identity so that references held elsewhere
        see the new contents.

        Raises:
            TypeError: If a change names an unknown field.
        """
        names = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - names)
        if unknown:
            raise TypeError(f"Unknown policy fields: {', '.join(unknown)}")

        for name, value in changes.items():
            current = getattr(self, name)
            if isinstance(current, list) and value is not current:
                current[:] = list(value)
            else:
                setattr(self, name, value)


def default_policy(bootstrap_file: str | Path | None = None) -> PolicyConfig:
    """Create the reference policy.

    Excludes the bootstrap file (the main script unless given), interpreter
    startup files, installation directories and generated files.
    """
    if bootstrap_file is None:
        bootstrap_file = main_script()

    return PolicyConfig(
        exclude_patterns=list(default_exclude_patterns()),
        excluded_files=list(STARTUP_FILES),
        bootstrap_file=bootstrap_file,
    )


def _normalize(path: str | os.PathLike[str]) -> str:
    return os.path.normcase(os.path.abspath(os.fspath(path)))


def _describe(pattern: ExclusionPattern) -> str:
    if isinstance(pattern, re.Pattern):
        return pattern.pattern
    if isinstance(pattern, str):
        return pattern
    return getattr(pattern, "__name__", repr(pattern))


def _report_broken(pattern: ExclusionPattern, error: Exception) -> None:
    key = _describe(pattern)
    if callable(pattern):
        if id(pattern) in _reported_matchers:
            return
        _reported_matchers[id(pattern)] = pattern
    else:
        if key in _reported_patterns:
            return
        _reported_patterns.add(key)
    logger.warning(f"Ignoring exclusion pattern {key!r} that cannot be evaluated: {error}")


def _pattern_matches(pattern: ExclusionPattern, path: str) -> bool:
    try:
        if callable(pattern):
            return bool(pattern(path))
        if isinstance(pattern, re.Pattern):
            return pattern.search(path) is not None
        return re.search(pattern, path) is not None
    except Exception as e:
        _report_broken(pattern, e)
        return False


def _ends_with_file(path: str, ending: str) -> bool:
    name = ending.replace("\\", "/").lstrip("/")
    if not name:
        return False
    candidate = path.replace("\\", "/")
    return candidate == name or candidate.endswith("/" + name)


def explain(path: str | os.PathLike[str] | None, config: PolicyConfig) -> str | None:
    """Explain why a path would not be compiled.

    Returns:
        A short reason, or None when the path is eligible.
    """
    if path is None or path == "":
        return "no source path"

    path_str = os.fspath(path)

    suffixes = tuple(config.suffixes())
    if not path_str.endswith(suffixes):
        return f"suffix is not one of {', '.join(suffixes) or '(none)'}"

    if config.bootstrap_file is not None and _normalize(path_str) == _normalize(config.bootstrap_file):
        return "bootstrap file"

    for ending in config.excluded_files:
        if _ends_with_file(path_str, ending):
            return f"excluded file {ending!r}"

    for pattern in config.exclude_patterns:
        if _pattern_matches(pattern, path_str):
            return f"matches exclusion {_describe(pattern)!r}"

    if config.predicate is not None:
        try:
            accepted = bool(config.predicate(path_str))
        except Exception as e:
            _report_broken(config.predicate, e)
            accepted = True
        if not accepted:
            return "rejected by predicate"

    return None


def is_eligible(path: str | os.PathLike[str] | None, config: PolicyConfig) -> bool:
    """Check whether a loaded file should be compiled."""
    return explain(path, config) is None
