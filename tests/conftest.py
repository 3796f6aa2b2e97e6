import os
import sys
from pathlib import Path
from typing import List

import pytest

from lob.config import LobConfig

_LOB_ENV = (
    "LOB_CACHE_PATH",
    "LOB_TOOLCHAIN",
    "LOB_PYTHON",
    "LOB_EMBEDDED_TOOLCHAIN",
    "LOB_LOCK_TIMEOUT",
    "LOB_LOG_LEVEL",
)


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    """Skip tests that execute artifacts through their shebang line when not on POSIX."""
    if os.name == "posix":
        return

    skip_posix = pytest.mark.skip(reason="Artifacts are executed through a shebang line")
    for item in items:
        if any(item.iter_markers(name="requires_posix")):
            item.add_marker(skip_posix)


@pytest.fixture
def tmp_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Use isolated temporary directory for cache in all tests.

    This fixture sets LOB_CACHE_PATH to a unique temporary directory for each test and clears
    the other LOB_* variables, so the host environment cannot leak into a test.
    """
    for name in _LOB_ENV:
        monkeypatch.delenv(name, raising=False)
    cache_dir = tmp_path / "cache"
    monkeypatch.setenv("LOB_CACHE_PATH", str(cache_dir))
    return cache_dir


@pytest.fixture
def config(tmp_cache_dir: Path) -> LobConfig:
    """A configuration using the running interpreter as the system toolchain."""
    return LobConfig.from_env(toolchain="system", python=sys.executable)
