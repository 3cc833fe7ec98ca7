"""Request and result types shared by the process modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from .cancel import CancelToken

if TYPE_CHECKING:
    from .process import Process


class Output(BaseModel):
    """Captured result of a finished process.

    ``exit_code`` is None when the process was terminated by a signal or
    never started.
    """
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class Options:
    """Options for one execution.

    Attributes:
        signal: External cancellation token.
        native_options: Extra keyword arguments for the OS launch call
            (``cwd``, ``env``, ``stdin``, ...).
        timeout: Seconds after which the process is killed.
        persist: Keep the child alive after the parent exits.
        stdin: Upstream process whose stdout feeds this process' stdin.
        throw_on_error: Raise ``NonZeroExitError`` on a non-zero exit code.
    """
    signal: Optional[CancelToken] = None
    native_options: Mapping[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None
    persist: bool = False
    stdin: Optional["Process"] = None
    throw_on_error: bool = False

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(
                f"Invalid timeout value: {self.timeout}. Timeout must be a positive number."
            )
