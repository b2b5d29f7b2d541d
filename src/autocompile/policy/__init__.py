"""Compile policy: which loaded files are eligible for compilation.

Settings (autocompile.policy.settings) are imported separately, since
they depend on the file watchers.
"""

from autocompile.policy.filter import (
    PolicyConfig,
    default_exclude_patterns,
    default_policy,
    explain,
    is_eligible,
    recognized_suffixes,
)

__all__ = [
    "PolicyConfig",
    "default_exclude_patterns",
    "default_policy",
    "explain",
    "is_eligible",
    "recognized_suffixes",
]
