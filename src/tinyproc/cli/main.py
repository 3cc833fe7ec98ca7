"""CLI entry point for tinyproc.

    tinyproc run -- ls -la
    tinyproc run --stream --pipe "grep py" -- ls
    tinyproc which node
    tinyproc path
"""

import asyncio
import os
import shlex
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from .. import __version__
from ..core.config import ConfigError
from ..core.env import compute_env, get_path_from_env
from ..process import ExecError, Options, Process, x
from ..process.resolve import IS_WINDOWS, ParsedCommand, resolve_command
from ..runtime.logging import bootstrap_logging
from ..util.error import format_error, format_unknown_error
from ..util.log import Log

log = Log.create({"service": "cli"})

app = typer.Typer(
    name="tinyproc",
    help="tinyproc - run external processes",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_TIMEOUT = 124


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"tinyproc {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (debug, info, warn, error)",
    ),
    print_logs: bool = typer.Option(
        False,
        "--print-logs",
        help="Print logs to stderr",
    ),
):
    """tinyproc - run external processes."""
    try:
        bootstrap_logging(level=log_level, console=True if print_logs else None)
    except (ConfigError, ValueError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILURE)


def _build(
    command: str,
    args: List[str],
    pipes: List[str],
    timeout: Optional[float],
    cwd: Optional[Path],
    throw: bool,
) -> Process:
    native = {"cwd": str(cwd)} if cwd else {}
    proc = x(command, args, Options(timeout=timeout, native_options=native, throw_on_error=throw))
    for spec in pipes:
        parts = shlex.split(spec, posix=not IS_WINDOWS)
        if not parts:
            raise typer.BadParameter("empty pipe command", param_hint="--pipe")
        proc = proc.pipe(parts[0], parts[1:], Options(native_options=native, throw_on_error=throw))
    return proc


async def _run(proc: Process, stream: bool) -> int:
    if stream:
        async for line in proc:
            typer.echo(line)
    else:
        result = await proc
        sys.stdout.write(result.stdout)
        sys.stdout.flush()
        sys.stderr.write(result.stderr)
        sys.stderr.flush()
    code = proc.exit_code
    return code if code is not None else EXIT_FAILURE


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    command: str = typer.Argument(..., help="Command to execute"),
    args: List[str] = typer.Argument(None, help="Arguments passed to the command"),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        min=0,
        help="Kill the process after this many seconds",
    ),
    cwd: Optional[Path] = typer.Option(
        None,
        "--cwd",
        help="Working directory",
        file_okay=False,
        exists=True,
    ),
    stream: bool = typer.Option(
        False,
        "--stream",
        "-s",
        help="Print combined output line by line as it arrives",
    ),
    throw: bool = typer.Option(
        False,
        "--throw",
        help="Treat a non-zero exit code as an error",
    ),
    pipe: List[str] = typer.Option(
        None,
        "--pipe",
        "-p",
        help="Command to pipe the output into (repeatable)",
    ),
):
    """Run a command and exit with its exit code."""
    proc = _build(command, list(args or []), list(pipe or []), timeout, cwd, throw)
    try:
        with log.time("run", {"command": command}):
            code = asyncio.run(_run(proc, stream))
    except ExecError as e:
        err_console.print(f"[red]Error:[/red] {format_error(e)}")
        code = EXIT_TIMEOUT if proc.timed_out else EXIT_FAILURE
    except OSError as e:
        err_console.print(f"[red]Error:[/red] {format_error(e) or format_unknown_error(e)}")
        code = EXIT_FAILURE
    log.info("run finished", {"command": command, "exit_code": code})
    raise typer.Exit(code)


@app.command()
def which(
    command: str = typer.Argument(..., help="Command to resolve"),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory"),
):
    """Print the executable a command resolves to."""
    options = {"cwd": str(cwd)} if cwd else {}
    resolved = resolve_command(ParsedCommand(command=command, options=options))
    if resolved is None:
        err_console.print(f"[red]Error:[/red] Command not found: {command}")
        raise typer.Exit(EXIT_FAILURE)
    typer.echo(resolved)


@app.command()
def path(
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory"),
):
    """Print the PATH a child process started in CWD would get."""
    directory = str((cwd or Path.cwd()).resolve())
    info = get_path_from_env(compute_env(directory))
    console.print(f"[bold]{info.key}[/bold]")
    for entry in info.value.split(os.pathsep):
        if entry:
            typer.echo(entry)
