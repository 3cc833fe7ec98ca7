"""Process handle.

A ``Process`` wraps one OS process. It is both awaitable (buffered result)
and async-iterable (stdout and stderr lines as they arrive)::

    result = await x("echo", ["foo"])
    async for line in x("ls", ["-la"]):
        print(line)

``x()`` and ``pipe()`` start the OS process right away when called inside
a running event loop; otherwise it starts on ``spawn()`` or on first
consumption.

Failures are never raised from internal callbacks; they are kept on the
handle and raised from ``await`` or iteration.
"""

from __future__ import annotations

import asyncio
import os
import signal as signal_mod
import subprocess
import sys
from contextlib import aclosing
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, Generator, List, Optional, Sequence, Union

from ..core.config import ConfigManager
from ..core.env import compute_env
from ..util.log import Log
from .cancel import CancelToken
from .errors import NonZeroExitError, ProcessTimeoutError
from .resolve import CommandDispatch, platform_dispatch
from .stream import combine_streams, iter_lines, pipe_stream, read_stream_as_string
from .types import Options, Output

log = Log.create({"service": "process"})

_dispatch: Optional[CommandDispatch] = None


def default_dispatch() -> CommandDispatch:
    """Platform dispatch strategy, chosen once per interpreter."""
    global _dispatch
    if _dispatch is None:
        _dispatch = platform_dispatch()
    return _dispatch


def _signal_number(sig: Union[int, str, None]) -> int:
    if sig is None:
        sig = ConfigManager.get().kill_signal
    if isinstance(sig, str):
        return int(getattr(signal_mod, sig))
    return int(sig)


class Process:
    """Handle for one external process."""

    def __init__(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        options: Optional[Options] = None,
        *,
        dispatch: Optional[CommandDispatch] = None,
    ):
        self._command = command
        self._args: List[str] = list(args or [])
        self._options = options or Options()
        self._dispatch = dispatch
        self._log = log.clone().tag("command", command)

        self._process: Optional[asyncio.subprocess.Process] = None
        self._spawn_task: Optional[asyncio.Task[None]] = None
        self._result_task: Optional[asyncio.Task[Output]] = None
        self._watcher: Optional[asyncio.Task[None]] = None
        self._pump: Optional[asyncio.Task[None]] = None
        self._closed = asyncio.Event()

        self._token: Optional[CancelToken] = None
        self._timeout_token: Optional[CancelToken] = None
        self._remove_cancel_callback = None

        self._aborted = False
        self._timed_out = False
        self._killed = False
        self._error: Optional[BaseException] = None
        self._pending_signal: Optional[int] = None
        self._stdout_claimed = False
        self._stderr_claimed = False

    def __repr__(self) -> str:
        return f"<Process {self._command!r} pid={self.pid} exit_code={self.exit_code}>"

    # -- Accessors --

    @property
    def command(self) -> str:
        return self._command

    @property
    def args(self) -> List[str]:
        return list(self._args)

    @property
    def options(self) -> Options:
        return self._options

    @property
    def process(self) -> Optional[asyncio.subprocess.Process]:
        """The underlying asyncio process, once spawned."""
        return self._process

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code, or None while running or when ended by a signal."""
        if self._process is None:
            return None
        code = self._process.returncode
        if code is None or code < 0:
            return None
        return code

    @property
    def signal_code(self) -> Optional[str]:
        """Name of the signal that terminated the process, if any."""
        if self._process is None:
            return None
        code = self._process.returncode
        if code is None or code >= 0:
            return None
        try:
            return signal_mod.Signals(-code).name
        except ValueError:
            return str(-code)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # -- Lifecycle --

    async def spawn(self) -> Optional[asyncio.subprocess.Process]:
        """Start the OS process if not started yet and return it.

        Launch failures are kept and raised by the consumer; the result is
        then None.
        """
        if self._spawn_task is None:
            self._spawn_task = asyncio.ensure_future(self._spawn())
        await asyncio.shield(self._spawn_task)
        return self._process

    def _start(self) -> "Process":
        """Begin spawning in the background if an event loop is running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return self
        if self._spawn_task is None:
            self._spawn_task = asyncio.ensure_future(self._spawn())
        return self

    def _launch_options(self) -> Dict[str, Any]:
        native: Dict[str, Any] = dict(self._options.native_options)
        cwd = os.fspath(native.get("cwd") or os.getcwd())

        kwargs: Dict[str, Any] = {
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }
        kwargs.update(native)
        kwargs["env"] = compute_env(cwd, native.get("env"))

        if self._options.persist:
            if sys.platform == "win32":
                kwargs["creationflags"] = (
                    kwargs.get("creationflags", 0)
                    | subprocess.CREATE_NEW_PROCESS_GROUP
                    | subprocess.DETACHED_PROCESS
                )
            else:
                kwargs["start_new_session"] = True
        return kwargs

    def _cancel_token(self) -> Optional[CancelToken]:
        sources: List[CancelToken] = []
        if self._options.timeout is not None:
            self._timeout_token = CancelToken.after(self._options.timeout)
            sources.append(self._timeout_token)
        if self._options.signal is not None:
            sources.append(self._options.signal)
        if not sources:
            return None
        return CancelToken.any(sources)

    async def _spawn(self) -> None:
        self._token = self._cancel_token()
        if self._token is not None and self._token.cancelled:
            self._log.info("cancelled before launch")
            self._finish()
            self._on_cancel(self._token.reason)
            return

        upstream = self._options.stdin
        upstream_stdout: Optional[asyncio.StreamReader] = None
        kwargs = self._launch_options()
        if upstream is not None:
            await upstream.spawn()
            upstream_stdout = upstream._claim_stdout()
            # Drain the producer's stderr now; it must not block on a full pipe.
            upstream._result()
            kwargs["stdin"] = (
                asyncio.subprocess.PIPE if upstream_stdout is not None else asyncio.subprocess.DEVNULL
            )

        dispatch = self._dispatch or default_dispatch()
        parsed = dispatch.parse(self._command, self._args, kwargs)
        try:
            if parsed.verbatim:
                # The shell is the resolved comspec; the line reaches it unchanged.
                self._process = await asyncio.create_subprocess_shell(
                    parsed.shell_line, executable=parsed.command, **parsed.options
                )
            else:
                self._process = await asyncio.create_subprocess_exec(
                    parsed.command, *parsed.args, **parsed.options
                )
        except OSError as e:
            self._log.error("failed to launch process", {"error": e})
            self._error = e
            if upstream_stdout is not None:
                # Nobody reads the producer otherwise; it would block on a full pipe.
                self._pump = asyncio.create_task(_drain(upstream_stdout))
            self._finish()
            return

        self._log.tag("pid", self._process.pid).info("spawned process")

        if upstream_stdout is not None and self._process.stdin is not None:
            self._pump = asyncio.create_task(pipe_stream(upstream_stdout, self._process.stdin))
        if self._token is not None:
            self._remove_cancel_callback = self._token.add_callback(self._on_cancel)
        self._watcher = asyncio.create_task(self._watch())
        if self._pending_signal is not None:
            self._send_signal(self._pending_signal)

    async def _watch(self) -> None:
        assert self._process is not None
        await self._process.wait()
        self._log.info("process exited", {"exit_code": self.exit_code, "signal": self.signal_code})
        self._finish()

    def _finish(self) -> None:
        if self._remove_cancel_callback is not None:
            self._remove_cancel_callback()
            self._remove_cancel_callback = None
        if self._token is not None:
            self._token.close()
        if self._timeout_token is not None:
            self._timeout_token.close()
        self._closed.set()

    def _on_cancel(self, reason: Optional[BaseException]) -> None:
        self._aborted = True
        if isinstance(reason, TimeoutError):
            self._timed_out = True
            if self._error is None:
                self._error = ProcessTimeoutError(self, self._options.timeout or 0)
            self._log.warn("process timed out", {"timeout": self._options.timeout})
        else:
            self._log.info("process aborted", {"reason": reason})
        self.kill()

    def kill(self, sig: Union[int, str, None] = None) -> bool:
        """Send ``sig`` (default: the configured kill signal) to the process.

        While the launch is still pending the signal is queued and delivered
        right after it. Returns False when no launch was requested, after
        exit, or when the OS refuses.
        """
        if self._process is None:
            if self._spawn_task is None or self._spawn_task.done() or self.closed:
                return False
            self._pending_signal = _signal_number(sig)
            self._killed = True
            self._log.info("queued kill until launch", {"signal": self._pending_signal})
            return True
        if self._process.returncode is not None:
            return False
        return self._send_signal(_signal_number(sig))

    def _send_signal(self, number: int) -> bool:
        assert self._process is not None
        try:
            self._process.send_signal(number)
        except ProcessLookupError:
            return False
        self._killed = True
        self._log.info("killed process", {"signal": number})
        return True

    # -- Piping --

    def pipe(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        options: Optional[Options] = None,
        **kwargs: Any,
    ) -> "Process":
        """Create a process reading this process' stdout as its stdin."""
        options = replace(options or Options(), **kwargs, stdin=self)
        return Process(command, args, options, dispatch=self._dispatch)._start()

    def _claim_stdout(self) -> Optional[asyncio.StreamReader]:
        if self._stdout_claimed or self._process is None:
            return None
        self._stdout_claimed = True
        return self._process.stdout

    def _claim_stderr(self) -> Optional[asyncio.StreamReader]:
        if self._stderr_claimed or self._process is None:
            return None
        self._stderr_claimed = True
        return self._process.stderr

    # -- Consumption --

    async def _complete(self, output: Optional[Output]) -> None:
        await self._closed.wait()
        if self._pump is not None:
            await self._pump
        upstream = self._options.stdin
        if upstream is not None:
            await upstream
        if self._error is not None:
            if isinstance(self._error, ProcessTimeoutError) and output is not None:
                self._error.output = output
            raise self._error
        code = self.exit_code
        if self._options.throw_on_error and code is not None and code != 0:
            raise NonZeroExitError(self, output)

    async def _wait_output(self) -> Output:
        await self.spawn()
        stdout, stderr = await asyncio.gather(
            _drain(self._claim_stdout()),
            _drain(self._claim_stderr()),
        )
        await self._closed.wait()
        output = Output(stdout=stdout, stderr=stderr, exit_code=self.exit_code)
        await self._complete(output)
        return output

    def _result(self) -> "asyncio.Task[Output]":
        if self._result_task is None:
            self._result_task = asyncio.ensure_future(self._wait_output())
        return self._result_task

    def __await__(self) -> Generator[Any, None, Output]:
        return self._result().__await__()

    async def _iterate(self) -> AsyncIterator[str]:
        await self.spawn()
        streams = [s for s in (self._claim_stdout(), self._claim_stderr()) if s is not None]
        if streams:
            merged = combine_streams(streams)
            async with aclosing(merged):
                async for line in iter_lines(merged):
                    yield line
        await self._complete(None)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def to_file(self, path: Union[str, "os.PathLike[str]"], *, stdout: bool = True, stderr: bool = True) -> None:
        """Write the selected output streams to ``path``.

        Unselected streams are drained and discarded. Completion is handled
        as for ``await``.
        """
        await self.spawn()
        selected: List[asyncio.StreamReader] = []
        discarded: List[asyncio.StreamReader] = []
        for reader, wanted in ((self._claim_stdout(), stdout), (self._claim_stderr(), stderr)):
            if reader is None:
                continue
            (selected if wanted else discarded).append(reader)

        async def write() -> None:
            merged = combine_streams(selected)
            async with aclosing(merged):
                with open(path, "wb") as handle:
                    async for chunk in merged:
                        handle.write(chunk)

        await asyncio.gather(write(), *(_drain(reader) for reader in discarded))
        await self._complete(None)


async def _drain(reader: Optional[asyncio.StreamReader]) -> str:
    if reader is None:
        return ""
    return await read_stream_as_string(reader)


def x(
    command: str,
    args: Optional[Sequence[str]] = None,
    options: Optional[Options] = None,
    **kwargs: Any,
) -> Process:
    """Create a process handle; keyword arguments override ``options`` fields."""
    if kwargs:
        options = replace(options or Options(), **kwargs)
    return Process(command, args, options)._start()


execute = x
