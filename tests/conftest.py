from collections.abc import Iterator
from pathlib import Path

import pytest

from tinyproc.core.config import ConfigManager
from tinyproc.core.global_paths import GlobalPath
from tinyproc.util.log import Log


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    config_dir = tmp_path / "config"
    monkeypatch.setattr(GlobalPath, "config", classmethod(lambda cls: str(config_dir)))
    monkeypatch.delenv("TINYPROC_CONFIG", raising=False)
    monkeypatch.delenv("TINYPROC_CONFIG_CONTENT", raising=False)
    monkeypatch.delenv("TINYPROC_LOG_LEVEL", raising=False)
    ConfigManager.reset()
    try:
        yield
    finally:
        ConfigManager.reset()


@pytest.fixture(autouse=True)
def _log_teardown() -> Iterator[None]:
    yield
    Log.reset()
