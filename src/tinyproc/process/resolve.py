"""Command resolution.

Finds the executable a command name refers to, the way a shell would but
without running one. On Windows, scripts that are not ``.exe``/``.com`` files
must be started through ``cmd.exe``; ``ShellMediatedDispatch`` detects those
(including extension-less scripts with a shebang line) and builds a fully
escaped cmd invocation for them.
"""

from __future__ import annotations

import ntpath
import os
import re
import shutil
import sys
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Sequence, Tuple

from ..core.env import get_path_from_env
from ..util.log import Log
from .escape import escape_argument, escape_command

log = Log.create({"service": "resolve"})

IS_WINDOWS = sys.platform == "win32"

EXECUTABLE_RE = re.compile(r"\.(?:com|exe)$", re.IGNORECASE)
SHEBANG_RE = re.compile(r"^#! ?(.*)")
DEFAULT_SHEBANG_BYTES = 150


@dataclass(frozen=True)
class ParsedCommand:
    """A command ready to be handed to the OS launcher.

    When ``verbatim`` is set, ``shell_line`` is the escaped command line that
    cmd must receive unchanged; ``command`` is the cmd executable to start and
    ``args`` describe the resulting ``<comspec> /c "..."`` invocation. cmd
    AutoRun commands are not suppressed on this path.
    """
    command: str
    args: Tuple[str, ...] = ()
    options: Mapping[str, Any] = field(default_factory=dict)
    shell_line: Optional[str] = None
    verbatim: bool = False


def _anchor_path(path_value: str, cwd: str) -> str:
    entries = []
    for entry in path_value.split(os.pathsep):
        if entry and not os.path.isabs(entry):
            entry = os.path.join(cwd, entry)
        entries.append(entry)
    return os.pathsep.join(entries)


def _which(command: str, path_value: str, cwd: Optional[str], any_extension: bool) -> Optional[str]:
    # Relative lookups are anchored to ``cwd`` explicitly instead of
    # switching the process-wide working directory.
    if cwd:
        path_value = _anchor_path(path_value, cwd)
        if os.path.dirname(command):
            command = os.path.join(cwd, command)

    if not any_extension:
        return shutil.which(command, path=path_value)

    if os.path.dirname(command):
        candidates = [command]
    else:
        dirs = [entry for entry in path_value.split(os.pathsep) if entry]
        if cwd and IS_WINDOWS:
            dirs.insert(0, cwd)
        candidates = [os.path.join(entry, command) for entry in dirs]
    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    return None


def _resolve_attempt(parsed: ParsedCommand, any_extension: bool) -> Optional[str]:
    env = parsed.options.get("env") or os.environ
    cwd = parsed.options.get("cwd")
    cwd = os.fspath(cwd) if cwd is not None else None

    try:
        resolved = _which(parsed.command, get_path_from_env(env).value, cwd, any_extension)
    except (OSError, ValueError) as e:
        log.debug("command lookup failed", {"command": parsed.command, "error": e})
        return None

    if resolved:
        resolved = os.path.abspath(os.path.join(cwd or "", resolved))
    return resolved


def resolve_command(parsed: ParsedCommand, retry_any_extension: bool = IS_WINDOWS) -> Optional[str]:
    """Return the absolute path of ``parsed.command`` or None if not found.

    With ``retry_any_extension``, a failed lookup is retried accepting file
    names as they are instead of requiring a ``PATHEXT`` extension.
    """
    resolved = _resolve_attempt(parsed, any_extension=False)
    if resolved is None and retry_any_extension:
        log.debug("retrying lookup with any extension", {"command": parsed.command})
        resolved = _resolve_attempt(parsed, any_extension=True)
    return resolved


def shebang_command(text: str) -> Optional[str]:
    """Extract the interpreter command of a ``#!`` line.

    ``#!/usr/bin/env node`` gives ``node``, ``#!/bin/sh -e`` gives ``sh -e``.
    """
    match = SHEBANG_RE.match(text)
    if not match:
        return None

    parts = match.group(1).rstrip("\r").split(" ")
    binary = parts[0].split("/")[-1]
    argument = parts[1] if len(parts) > 1 else ""
    if binary == "env":
        return argument or None
    return f"{binary} {argument}" if argument else binary


def read_shebang(file: str, size: int = DEFAULT_SHEBANG_BYTES) -> Optional[str]:
    """Read the interpreter command from the first bytes of ``file``."""
    try:
        with open(file, "rb") as handle:
            head = handle.read(size)
    except OSError:
        return None
    return shebang_command(head.decode("utf-8", errors="replace"))


def detect_shebang(
    parsed: ParsedCommand,
    size: int = DEFAULT_SHEBANG_BYTES,
) -> Tuple[ParsedCommand, Optional[str]]:
    """Resolve ``parsed`` and swap in its shebang interpreter, if any.

    Returns the possibly rewritten command and the resolved file to run.
    """
    file = resolve_command(parsed, retry_any_extension=True)
    shebang = read_shebang(file, size) if file else None
    if shebang:
        parsed = replace(parsed, command=shebang, args=(file, *parsed.args))
        return parsed, resolve_command(parsed, retry_any_extension=True)
    return parsed, file


def _cmd_shim_pattern(local_bin: str) -> "re.Pattern[str]":
    parts = [re.escape(part) for part in re.split(r"[\\/]", local_bin) if part]
    return re.compile(r"[\\/]".join(parts) + r"[\\/][^\\/]+\.cmd$", re.IGNORECASE)


class CommandDispatch:
    """Strategy turning a command into what the OS launcher receives."""

    name = "base"

    def parse(
        self,
        command: str,
        args: Sequence[str],
        options: Optional[Mapping[str, Any]] = None,
    ) -> ParsedCommand:
        raise NotImplementedError


class DirectDispatch(CommandDispatch):
    """POSIX: the OS resolves the command and honours shebangs itself."""

    name = "direct"

    def parse(self, command, args, options=None):
        return ParsedCommand(command=command, args=tuple(args), options=dict(options or {}))


class ShellMediatedDispatch(CommandDispatch):
    """Windows: run non-executables through ``cmd.exe`` with escaping."""

    name = "shell"

    def __init__(
        self,
        comspec: Optional[str] = None,
        local_bin: Optional[str] = None,
        shebang_bytes: Optional[int] = None,
    ):
        if local_bin is None or shebang_bytes is None:
            from ..core.config import ConfigManager

            config = ConfigManager.get()
            local_bin = local_bin if local_bin is not None else config.local_bin
            shebang_bytes = shebang_bytes if shebang_bytes is not None else config.shebang_bytes
        self.comspec = comspec
        self.shebang_bytes = shebang_bytes
        self._cmd_shim = _cmd_shim_pattern(local_bin)

    def _comspec(self, options: Mapping[str, Any]) -> str:
        if self.comspec:
            return self.comspec
        env = options.get("env") or os.environ
        for key, value in env.items():
            if key.upper() == "COMSPEC" and value:
                return value
        system_root = env.get("SystemRoot") or os.environ.get("SystemRoot", r"C:\Windows")
        return ntpath.join(system_root, "System32", "cmd.exe")

    def parse(self, command, args, options=None):
        parsed = ParsedCommand(command=command, args=tuple(args), options=dict(options or {}))
        parsed, file = detect_shebang(parsed, self.shebang_bytes)
        command_file = file or parsed.command

        if EXECUTABLE_RE.search(command_file):
            return parsed

        # cmd shims forward their arguments to another cmd call, which
        # consumes one more level of ^ escapes.
        double_escape = bool(self._cmd_shim.search(command_file))

        line = " ".join(
            [escape_command(ntpath.normpath(parsed.command))]
            + [escape_argument(arg, double_escape) for arg in parsed.args]
        )
        log.debug("dispatching through cmd", {"command": command, "file": command_file})
        return ParsedCommand(
            command=self._comspec(parsed.options),
            args=("/c", f'"{line}"'),
            options=parsed.options,
            shell_line=line,
            verbatim=True,
        )


def platform_dispatch() -> CommandDispatch:
    """Pick the dispatch strategy for the running platform."""
    if IS_WINDOWS:
        return ShellMediatedDispatch()
    return DirectDispatch()
