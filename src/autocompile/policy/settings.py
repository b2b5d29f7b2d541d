"""File-based settings for the compile policy.

Settings are read from ``autocompile.toml`` or from the ``[tool.autocompile]``
table of ``pyproject.toml``. Keys may be written with hyphens or
underscores::

    [tool.autocompile]
    exclude-patterns = ["/migrations/", "_generated\\.py$"]
    excluded-files = ["settings/local.py"]
    bootstrap-file = "manage.py"
"""

import logging
import os
from pathlib import Path
from typing import Any, Final

import tomli
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autocompile.errors import ConfigurationError
from autocompile.policy.filter import PolicyConfig, default_policy
from autocompile.watch import ConfigWatcher

logger = logging.getLogger(__name__)

CONFIG_FILENAME: Final = "autocompile.toml"
PYPROJECT_FILENAME: Final = "pyproject.toml"
CONFIG_ENV_VAR: Final = "AUTOCOMPILE_CONFIG"


class Settings(BaseModel):
    """User settings for compile-on-load."""

    model_config = ConfigDict(
        alias_generator=lambda name: name.replace("_", "-"),
        populate_by_name=True,
        extra="forbid",
    )

    exclude_patterns: list[str] = Field(default_factory=list)
    excluded_files: list[str] = Field(default_factory=list)
    bootstrap_file: str | None = None
    use_default_excludes: bool = True
    verbose: bool = False
    history_limit: int = Field(default=100, ge=1)


def _has_tool_table(pyproject: Path) -> bool:
    try:
        data = tomli.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, tomli.TOMLDecodeError) as e:
        logger.debug(f"Failed to read {pyproject}: {e}")
        return False
    return "autocompile" in data.get("tool", {})


def find_config_file(start: Path | None = None) -> Path | None:
    """Locate the settings file.

    The AUTOCOMPILE_CONFIG environment variable wins. Otherwise the
    directory (default: the working directory) is searched for
    autocompile.toml, then for a pyproject.toml with a [tool.autocompile]
    table.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    directory = start or Path.cwd()

    candidate = directory / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    pyproject = directory / PYPROJECT_FILENAME
    if pyproject.is_file() and _has_tool_table(pyproject):
        return pyproject

    return None


def read_settings_table(path: Path) -> dict[str, Any]:
    """Read the raw settings table from a TOML file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        data = tomli.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(path, f"cannot read file: {e}") from e
    except tomli.TOMLDecodeError as e:
        raise ConfigurationError(path, f"invalid TOML: {e}") from e

    if path.name == PYPROJECT_FILENAME:
        return data.get("tool", {}).get("autocompile", {})
    return data


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a file, or defaults when there is none.

    Args:
        path: Settings file to read. Searched for when omitted.

    Raises:
        ConfigurationError: If the file is unreadable or holds invalid values.
    """
    config_path = Path(path) if path is not None else find_config_file()
    if config_path is None:
        return Settings()

    table = read_settings_table(config_path)
    try:
        return Settings.model_validate(table)
    except ValidationError as e:
        raise ConfigurationError(config_path, str(e)) from e


def policy_from_settings(
    settings: Settings,
    bootstrap_file: str | Path | None = None,
) -> PolicyConfig:
    """Build a policy from settings.

    An explicit bootstrap_file overrides the one in the settings. Default
    exclusions come first, user patterns after them.
    """
    bootstrap = bootstrap_file or settings.bootstrap_file

    if settings.use_default_excludes:
        policy = default_policy(bootstrap_file=bootstrap)
    else:
        policy = PolicyConfig(bootstrap_file=bootstrap)

    policy.exclude_patterns.extend(settings.exclude_patterns)
    policy.excluded_files.extend(settings.excluded_files)
    return policy


def apply_settings(
    policy: PolicyConfig,
    settings: Settings,
    bootstrap_file: str | Path | None = None,
) -> None:
    """Replace a shared policy's exclusions with those from settings."""
    fresh = policy_from_settings(settings, bootstrap_file)
    policy.update(
        exclude_patterns=fresh.exclude_patterns,
        excluded_files=fresh.excluded_files,
        bootstrap_file=fresh.bootstrap_file,
    )


class PolicySource:
    """Keeps a shared policy in sync with its settings file.

    refresh() is cheap when the file is unchanged (an mtime check), so it
    can run on every load event.
    """

    def __init__(
        self,
        path: str | Path,
        policy: PolicyConfig,
        bootstrap_file: str | Path | None = None,
    ):
        self.path = Path(path)
        self.policy = policy
        self.bootstrap_file = bootstrap_file
        self.watcher = ConfigWatcher(self.path)
        self.settings: Settings | None = None

    def load(self) -> Settings:
        """Read the file and apply it to the policy.

        Raises:
            ConfigurationError: If the file is unreadable or invalid.
        """
        settings = load_settings(self.path)
        apply_settings(self.policy, settings, self.bootstrap_file)
        self.settings = settings
        return settings

    def refresh(self) -> bool:
        """Reapply the settings file if it changed since the last check.

        Returns:
            True if the policy was updated.
        """
        if not self.watcher.check_changed():
            return False

        try:
            self.load()
        except ConfigurationError as e:
            logger.error(f"Keeping previous policy: {e}")
            return False

        logger.info(f"Reloaded compile policy from {self.path}")
        return True
