"""Configuration management.

Loads and merges configuration from multiple sources, later sources winning:

1. Built-in defaults
2. Global config file (``<user config dir>/config.json``) or ``$TINYPROC_CONFIG``
3. ``TINYPROC_CONFIG_CONTENT`` environment variable (JSON)
4. ``TINYPROC_LOG_LEVEL`` environment variable
"""

from __future__ import annotations

import os
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config_loader import deep_merge, load_json_file, load_json_text
from .global_paths import GlobalPath
from ..util.log import Log

log = Log.create({"service": "config"})


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Config error in {path}: {message}")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: Optional[str] = None
    format: Optional[Literal["kv", "json"]] = None
    console: Optional[bool] = None
    file: Optional[bool] = None
    dev_file: Optional[bool] = Field(None, alias="devFile")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class Config(BaseModel):
    """Resolved tinyproc configuration."""
    local_bin: str = Field(
        os.path.join("node_modules", ".bin"),
        alias="localBin",
        description="Package-local binaries directory added to PATH for every ancestor",
    )
    kill_signal: str = Field("SIGTERM", alias="killSignal")
    shebang_bytes: int = Field(150, alias="shebangBytes", gt=0)
    logging: Optional[LoggingConfig] = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator("kill_signal")
    @classmethod
    def _known_signal(cls, value: str) -> str:
        import signal

        name = value.upper()
        if not name.startswith("SIG"):
            name = "SIG" + name
        if not hasattr(signal, name):
            raise ValueError(f"unknown signal: {value}")
        return name


class ConfigManager:
    """Process-wide configuration cache."""

    _cache: Optional[Config] = None
    _source: Optional[str] = None

    @classmethod
    def get(cls) -> Config:
        if cls._cache is None:
            cls._cache = cls._load()
        return cls._cache

    @classmethod
    def source(cls) -> Optional[str]:
        """Path of the config file that was loaded, if any."""
        cls.get()
        return cls._source

    @classmethod
    def reset(cls) -> None:
        """Reset cached configuration."""
        cls._cache = None
        cls._source = None

    @classmethod
    def _load(cls) -> Config:
        result: Dict[str, Any] = {}

        filepath = os.environ.get("TINYPROC_CONFIG") or os.path.join(
            GlobalPath.config(), "config.json"
        )
        data = load_json_file(filepath)
        if data:
            result = deep_merge(result, data)
            cls._source = filepath
            log.info("loaded config file", {"path": filepath})

        content = os.environ.get("TINYPROC_CONFIG_CONTENT")
        if content:
            data = load_json_text(content, "TINYPROC_CONFIG_CONTENT")
            if data:
                result = deep_merge(result, data)
                log.info("loaded config from TINYPROC_CONFIG_CONTENT")

        level = os.environ.get("TINYPROC_LOG_LEVEL")
        if level:
            result = deep_merge(result, {"logging": {"level": level}})

        try:
            return Config.model_validate(result)
        except ValidationError as e:
            raise ConfigError(cls._source or "<env>", str(e)) from e
