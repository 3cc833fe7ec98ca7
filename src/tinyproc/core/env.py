"""Environment computation for child processes.

Finds the PATH-like variable of an environment mapping (case-insensitively,
since Windows spells it ``Path``) and extends it with the package-local
binaries directory of the working directory and of every ancestor directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from ..util.log import Log

log = Log.create({"service": "env"})

DEFAULT_PATH_KEY = "PATH"
DEFAULT_LOCAL_BIN = os.path.join("node_modules", ".bin")

EnvLike = Mapping[str, Optional[str]]


@dataclass(frozen=True)
class EnvPathInfo:
    """The PATH-like variable found in an environment.

    ``key`` keeps the casing found in the source mapping; writing the value
    back under any other spelling would leave two PATH variables behind.
    """

    key: str
    value: str


def get_path_from_env(env: EnvLike) -> EnvPathInfo:
    """Return the first PATH-like entry of ``env``.

    Falls back to an empty ``PATH`` when no key matches or when the matching
    key holds an empty value.
    """
    for key, value in env.items():
        if key.upper() != DEFAULT_PATH_KEY:
            continue
        if not value:
            return EnvPathInfo(key=DEFAULT_PATH_KEY, value="")
        return EnvPathInfo(key=key, value=value)
    return EnvPathInfo(key=DEFAULT_PATH_KEY, value="")


def add_local_bin_to_path(
    cwd: str,
    path: EnvPathInfo,
    local_bin: str = DEFAULT_LOCAL_BIN,
) -> EnvPathInfo:
    """Append ``<dir>/<local_bin>`` for ``cwd`` and each of its ancestors."""
    parts = path.value.split(os.pathsep)

    current = os.path.abspath(cwd)
    while True:
        parts.append(os.path.join(current, local_bin))
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent

    return EnvPathInfo(key=path.key, value=os.pathsep.join(parts))


def compute_env(
    cwd: str,
    env: Optional[EnvLike] = None,
    local_bin: Optional[str] = None,
) -> dict[str, str]:
    """Build the full environment for a child process started in ``cwd``.

    ``env`` is overlaid on the inherited ``os.environ``; a ``None`` value
    removes the inherited variable.
    """
    if local_bin is None:
        from .config import ConfigManager

        local_bin = ConfigManager.get().local_bin

    merged: dict[str, Optional[str]] = {**os.environ, **(env or {})}
    info = add_local_bin_to_path(cwd, get_path_from_env(merged), local_bin)

    result = {key: value for key, value in merged.items() if value is not None}
    result[info.key] = info.value
    log.debug("computed env path", {"key": info.key, "cwd": cwd})
    return result
