"""Environment variables read by lob.

Every getter reads the environment at call time so tests can monkeypatch it.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

_TOOLCHAIN_POLICIES = ("auto", "embedded", "system")


def _default_cache_root() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA")
        if base:
            return Path(base) / "lob"
        return Path.home() / "AppData" / "Local" / "lob"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / "lob"
    base = os.environ.get("XDG_CACHE_HOME")
    if base:
        return Path(base) / "lob"
    return Path.home() / ".cache" / "lob"


def get_lob_cache_path() -> Path:
    """The cache root. LOB_CACHE_PATH if set, else the platform cache directory + ``lob``."""
    value = os.environ.get("LOB_CACHE_PATH")
    if value:
        return Path(value).expanduser()
    return _default_cache_root()


def get_lob_toolchain() -> str:
    """Toolchain selection policy from LOB_TOOLCHAIN: ``auto`` (default), ``embedded``, ``system``.

    Raises
    ------
    ValueError
        If the variable holds an unknown policy.
    """
    value = os.environ.get("LOB_TOOLCHAIN", "auto").strip().lower() or "auto"
    if value not in _TOOLCHAIN_POLICIES:
        raise ValueError(
            f"Invalid LOB_TOOLCHAIN '{value}'. Expected one of {', '.join(_TOOLCHAIN_POLICIES)}"
        )
    return value


def get_lob_python() -> Optional[str]:
    """Explicit system interpreter from LOB_PYTHON, if set."""
    return os.environ.get("LOB_PYTHON") or None


def get_lob_embedded_toolchain() -> Optional[Path]:
    """Embedded toolchain archive override from LOB_EMBEDDED_TOOLCHAIN, if set."""
    value = os.environ.get("LOB_EMBEDDED_TOOLCHAIN")
    return Path(value).expanduser() if value else None


def get_lob_lock_timeout() -> float:
    """Seconds to wait for the cache lock, from LOB_LOCK_TIMEOUT. Defaults to 10."""
    value = os.environ.get("LOB_LOCK_TIMEOUT")
    if not value:
        return 10.0
    timeout = float(value)
    if timeout < 0:
        raise ValueError(f"LOB_LOCK_TIMEOUT must be >= 0, got {value}")
    return timeout


def get_lob_log_level() -> str:
    """Logging level from LOB_LOG_LEVEL. Defaults to WARNING."""
    return os.environ.get("LOB_LOG_LEVEL", "WARNING").upper()
