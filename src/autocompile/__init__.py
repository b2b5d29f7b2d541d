"""autocompile - compile Python modules to bytecode as they load.

Modules imported while interception is enabled are byte-compiled and then
re-executed from the compiled artifact, with their after-load actions
running once, against the compiled code.
"""

__version__ = "0.1.0"

from autocompile.api import (  # noqa: E402
    configure,
    disable,
    enable,
    get_interceptor,
    get_policy,
    is_enabled,
    run_pending,
    shutdown,
)
from autocompile.errors import (  # noqa: E402
    AutocompileError,
    CompileError,
    ConfigurationError,
    ReloadError,
)

__all__ = [
    "AutocompileError",
    "CompileError",
    "ConfigurationError",
    "ReloadError",
    "__version__",
    "configure",
    "disable",
    "enable",
    "get_interceptor",
    "get_policy",
    "is_enabled",
    "run_pending",
    "shutdown",
]
