from __future__ import annotations

import os
from pathlib import Path

import pytest

from tinyproc.core.env import (
    EnvPathInfo,
    add_local_bin_to_path,
    compute_env,
    get_path_from_env,
)

LOCAL_BIN = os.path.join("node_modules", ".bin")


def _ancestors(directory: Path) -> list[Path]:
    result = [directory]
    while result[-1].parent != result[-1]:
        result.append(result[-1].parent)
    return result


def test_compute_env_adds_local_bin_for_cwd_and_every_ancestor(tmp_path: Path) -> None:
    env = compute_env(str(tmp_path))
    entries = env["PATH"].split(os.pathsep)

    expected = [str(directory / LOCAL_BIN) for directory in _ancestors(tmp_path)]
    for entry in expected:
        assert entries.count(entry) == 1
    assert entries[-len(expected):] == expected


def test_compute_env_keeps_existing_path_first(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PATH", os.pathsep.join(["/opt/a", "/opt/b"]))
    env = compute_env(str(tmp_path))

    assert env["PATH"].split(os.pathsep)[:2] == ["/opt/a", "/opt/b"]


def test_compute_env_extends_process_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TINYPROC_TEST_VALUE", "inherited")
    env = compute_env(str(tmp_path), {"foo": "bar"})

    for key, value in os.environ.items():
        if key.upper() != "PATH":
            assert env[key] == value
    assert env["foo"] == "bar"
    assert env["TINYPROC_TEST_VALUE"] == "inherited"


def test_compute_env_none_override_removes_variable(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TINYPROC_TEST_VALUE", "inherited")
    env = compute_env(str(tmp_path), {"TINYPROC_TEST_VALUE": None})

    assert "TINYPROC_TEST_VALUE" not in env


def test_compute_env_supports_case_insensitive_path_keys(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PATH", raising=False)
    env = compute_env(str(tmp_path), {"Path": "/"})

    assert "Path" in env
    assert "PATH" not in env
    assert env["Path"].split(os.pathsep)[0] == "/"


def test_compute_env_uses_default_key_if_empty_path_found(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PATH", raising=False)
    env = compute_env(str(tmp_path), {"Path": None})

    assert isinstance(env["PATH"], str)
    assert "Path" not in env


def test_compute_env_uses_default_key_if_no_path_found(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PATH", raising=False)
    env = compute_env(str(tmp_path))

    assert isinstance(env["PATH"], str)
    assert str(tmp_path / LOCAL_BIN) in env["PATH"].split(os.pathsep)


def test_compute_env_honours_configured_local_bin(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TINYPROC_CONFIG_CONTENT", '{"localBin": ".venv/bin"}')
    env = compute_env(str(tmp_path))

    assert os.path.join(str(tmp_path), ".venv/bin") in env["PATH"].split(os.pathsep)


def test_get_path_from_env_returns_first_match() -> None:
    info = get_path_from_env({"HOME": "/home/me", "path": "/usr/bin", "PATH": "/bin"})
    assert info == EnvPathInfo(key="path", value="/usr/bin")


def test_get_path_from_env_defaults_without_match() -> None:
    assert get_path_from_env({"HOME": "/home/me"}) == EnvPathInfo(key="PATH", value="")


def test_add_local_bin_to_path_keeps_key() -> None:
    info = add_local_bin_to_path(os.path.abspath(os.sep), EnvPathInfo(key="Path", value="x"), "bin")

    assert info.key == "Path"
    assert info.value == os.pathsep.join(["x", os.path.join(os.path.abspath(os.sep), "bin")])
