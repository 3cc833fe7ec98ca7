"""Error types raised when consuming a process."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .process import Process
    from .types import Output


class ExecError(Exception):
    """Base class for errors tied to a process handle."""

    def __init__(self, message: str, process: "Process", output: Optional["Output"] = None):
        super().__init__(message)
        self.process = process
        self.output = output


class NonZeroExitError(ExecError):
    """Raised when ``throw_on_error`` is set and the process exits non-zero."""

    def __init__(self, process: "Process", output: Optional["Output"] = None):
        super().__init__(
            f"Process exited with non-zero status ({process.exit_code})",
            process,
            output,
        )

    @property
    def exit_code(self) -> Optional[int]:
        return self.process.exit_code


class ProcessTimeoutError(ExecError):
    """Raised when a process is killed because its timeout expired.

    ``output`` holds whatever was captured before the kill when the result
    was consumed through ``await``.
    """

    def __init__(self, process: "Process", timeout: float):
        super().__init__(f"Process timed out after {timeout:g}s", process)
        self.timeout = timeout
