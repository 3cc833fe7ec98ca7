"""Process execution.

Example:
    from tinyproc.process import x

    # Buffered result
    result = await x("ls", ["-la"])
    print(result.stdout)

    # Stream combined stdout/stderr lines
    async for line in x("npm", ["install"]):
        print(line)

    # Pipe one process into another
    result = await x("ls").pipe("grep", ["py"])
"""

from .cancel import CancelledByCaller, CancelToken
from .errors import ExecError, NonZeroExitError, ProcessTimeoutError
from .escape import escape_argument, escape_command
from .process import Process, execute, x
from .resolve import (
    CommandDispatch,
    DirectDispatch,
    ParsedCommand,
    ShellMediatedDispatch,
    resolve_command,
)
from .types import Options, Output

__all__ = [
    "CancelToken",
    "CancelledByCaller",
    "CommandDispatch",
    "DirectDispatch",
    "ExecError",
    "NonZeroExitError",
    "Options",
    "Output",
    "ParsedCommand",
    "Process",
    "ProcessTimeoutError",
    "ShellMediatedDispatch",
    "escape_argument",
    "escape_command",
    "execute",
    "resolve_command",
    "x",
]
