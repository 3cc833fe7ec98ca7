from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

from tinyproc.process.resolve import (
    DirectDispatch,
    ParsedCommand,
    ShellMediatedDispatch,
    read_shebang,
    resolve_command,
    shebang_command,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX lookup semantics")


def _write(path: Path, content: str, executable: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def _env(*dirs: Path) -> dict[str, str]:
    return {**os.environ, "PATH": os.pathsep.join([*map(str, dirs), os.environ.get("PATH", "")])}


@posix_only
def test_resolve_command_finds_commands() -> None:
    cwd = os.getcwd()
    resolved = resolve_command(ParsedCommand(command="sh"))

    assert resolved is not None
    assert os.path.isabs(resolved)
    assert os.getcwd() == cwd


@posix_only
def test_resolve_command_from_custom_cwd(tmp_path: Path) -> None:
    cwd = os.getcwd()
    resolved = resolve_command(ParsedCommand(command="sh", options={"cwd": str(tmp_path)}))

    assert resolved is not None
    assert os.getcwd() == cwd


@posix_only
def test_resolve_command_anchors_relative_commands_to_cwd(tmp_path: Path) -> None:
    tool = _write(tmp_path / "bin" / "tool", "#!/bin/sh\n")
    parsed = ParsedCommand(command=os.path.join(".", "bin", "tool"), options={"cwd": str(tmp_path)})

    assert resolve_command(parsed) == str(tool)


@posix_only
def test_resolve_command_anchors_relative_path_entries_to_cwd(tmp_path: Path) -> None:
    tool = _write(tmp_path / "bin" / "tool", "#!/bin/sh\n")
    parsed = ParsedCommand(command="tool", options={"cwd": str(tmp_path), "env": {"PATH": "bin"}})

    assert resolve_command(parsed) == str(tool)


@posix_only
def test_resolve_command_uses_case_insensitive_path_key(tmp_path: Path) -> None:
    tool = _write(tmp_path / "tool", "#!/bin/sh\n")
    parsed = ParsedCommand(command="tool", options={"env": {"Path": str(tmp_path)}})

    assert resolve_command(parsed) == str(tool)


def test_resolve_command_returns_none_when_missing(tmp_path: Path) -> None:
    parsed = ParsedCommand(command="definitely-not-a-command", options={"env": {"PATH": str(tmp_path)}})

    assert resolve_command(parsed) is None
    assert resolve_command(parsed, retry_any_extension=True) is None


@posix_only
def test_resolve_command_retry_accepts_any_file(tmp_path: Path) -> None:
    data = _write(tmp_path / "data", "not executable", executable=False)
    parsed = ParsedCommand(command="data", options={"env": {"PATH": str(tmp_path)}})

    assert resolve_command(parsed, retry_any_extension=False) is None
    assert resolve_command(parsed, retry_any_extension=True) == str(data)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("#!/usr/bin/env node\nconsole.log(1)", "node"),
        ("#!/bin/sh -e\n", "sh -e"),
        ("#! /usr/bin/python3\n", "python3"),
        ("#!/bin/bash\r\necho", "bash"),
        ("#!/usr/bin/env\n", None),
        ("echo hello\n", None),
        ("", None),
    ],
)
def test_shebang_command(text: str, expected: str | None) -> None:
    assert shebang_command(text) == expected


def test_read_shebang(tmp_path: Path) -> None:
    script = _write(tmp_path / "script", "#!/usr/bin/env node\n" + "x" * 500, executable=False)

    assert read_shebang(str(script)) == "node"
    assert read_shebang(str(tmp_path / "missing")) is None


def test_read_shebang_requires_leading_marker(tmp_path: Path) -> None:
    script = _write(tmp_path / "script", " " * 10 + "#!/bin/sh\n", executable=False)

    assert read_shebang(str(script)) is None


def test_direct_dispatch_passes_through() -> None:
    parsed = DirectDispatch().parse("echo", ["a b", "c&d"], {"cwd": "/tmp"})

    assert parsed == ParsedCommand(command="echo", args=("a b", "c&d"), options={"cwd": "/tmp"})
    assert not parsed.verbatim


def _shell_dispatch() -> ShellMediatedDispatch:
    return ShellMediatedDispatch(
        comspec="cmd.exe",
        local_bin=os.path.join("node_modules", ".bin"),
        shebang_bytes=150,
    )


@posix_only
def test_shell_dispatch_runs_shebang_scripts_through_interpreter(tmp_path: Path) -> None:
    script = _write(tmp_path / "bin" / "tool", "#!/bin/sh\necho hi\n")

    parsed = _shell_dispatch().parse("tool", ["a b"], {"env": _env(tmp_path / "bin")})

    assert parsed.verbatim
    assert parsed.command == "cmd.exe"
    assert parsed.args == ("/c", f'"{parsed.shell_line}"')
    assert parsed.shell_line is not None
    assert parsed.shell_line.startswith("sh ")
    assert f'^"{script}^"' in parsed.shell_line
    assert parsed.shell_line.endswith('^"a^ b^"')


@posix_only
def test_shell_dispatch_runs_executables_directly(tmp_path: Path) -> None:
    _write(tmp_path / "bin" / "tool.exe", "binary")

    parsed = _shell_dispatch().parse("tool.exe", ["a b"], {"env": _env(tmp_path / "bin")})

    assert not parsed.verbatim
    assert parsed.command == "tool.exe"
    assert parsed.args == ("a b",)


@posix_only
def test_shell_dispatch_double_escapes_cmd_shims(tmp_path: Path) -> None:
    _write(tmp_path / "node_modules" / ".bin" / "shim.cmd", "@echo off\n")

    parsed = _shell_dispatch().parse(
        "shim.cmd",
        ["a&b"],
        {"env": _env(tmp_path / "node_modules" / ".bin")},
    )

    assert parsed.verbatim
    assert parsed.shell_line == 'shim.cmd ^^^"a^^^&b^^^"'


def test_shell_dispatch_defers_unknown_commands_to_cmd(tmp_path: Path) -> None:
    parsed = _shell_dispatch().parse("no-such-tool", ["x"], {"env": {"PATH": str(tmp_path)}})

    assert parsed.verbatim
    assert parsed.shell_line == 'no-such-tool ^"x^"'


def test_shell_dispatch_reads_comspec_from_env(tmp_path: Path) -> None:
    dispatch = ShellMediatedDispatch(local_bin="bin", shebang_bytes=150)
    parsed = dispatch.parse(
        "no-such-tool",
        [],
        {"env": {"PATH": str(tmp_path), "ComSpec": r"C:\Windows\system32\cmd.exe"}},
    )

    assert parsed.command == r"C:\Windows\system32\cmd.exe"
