"""Logging bootstrap for command-line entry points."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.config import ConfigManager
from ..util.log import Log, LogFormat, LogLevel


@dataclass(frozen=True)
class LogSettings:
    level: LogLevel
    format: LogFormat
    console: bool
    file: bool
    dev_file: bool


def resolve_log_settings(
    *,
    level: Optional[str] = None,
    format: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
    dev_file: Optional[bool] = None,
) -> LogSettings:
    """Merge explicit arguments with the ``logging`` section of the config.

    Arguments win over config; without either, logs go nowhere.
    """
    cfg = ConfigManager.get().logging

    def pick(value, configured, default):
        if value is not None:
            return value
        if configured is not None:
            return configured
        return default

    return LogSettings(
        level=LogLevel.parse(pick(level, cfg.level if cfg else None, None)),
        format=LogFormat.parse(pick(format, cfg.format if cfg else None, None)),
        console=pick(console, cfg.console if cfg else None, False),
        file=pick(file, cfg.file if cfg else None, False),
        dev_file=pick(dev_file, cfg.dev_file if cfg else None, False),
    )


def bootstrap_logging(
    *,
    level: Optional[str] = None,
    format: Optional[str] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
    dev_file: Optional[bool] = None,
) -> LogSettings:
    """Resolve settings and initialize the process logger."""
    settings = resolve_log_settings(
        level=level,
        format=format,
        console=console,
        file=file,
        dev_file=dev_file,
    )
    Log.configure(
        level=settings.level,
        format=settings.format,
        console=settings.console,
        file=settings.file,
        dev=settings.dev_file,
    )
    return settings
