"""tinyproc - run external processes from asyncio.

Await a process for its output, iterate it for lines, or pipe it into the
next one.
"""

__version__ = "0.1.0"

from .process import (
    CancelToken,
    ExecError,
    NonZeroExitError,
    Options,
    Output,
    Process,
    ProcessTimeoutError,
    escape_argument,
    escape_command,
    execute,
    resolve_command,
    x,
)
from .core.env import compute_env, get_path_from_env

__all__ = [
    "__version__",
    "CancelToken",
    "ExecError",
    "NonZeroExitError",
    "Options",
    "Output",
    "Process",
    "ProcessTimeoutError",
    "compute_env",
    "escape_argument",
    "escape_command",
    "execute",
    "get_path_from_env",
    "resolve_command",
    "x",
]
