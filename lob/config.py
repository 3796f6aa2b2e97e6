"""Configuration threaded through every lob component."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from lob.data import OptimizationProfile
from lob.env import (
    get_lob_cache_path,
    get_lob_embedded_toolchain,
    get_lob_lock_timeout,
    get_lob_python,
    get_lob_toolchain,
)


class LobConfig(BaseModel):
    """Configuration of one lob invocation.

    Components receive it explicitly instead of reading process-wide state, so tests can point
    them at an isolated cache root.
    """

    cache_root: Path
    """Root directory of the artifact cache and of the extracted toolchain."""
    toolchain: Literal["auto", "embedded", "system"] = "auto"
    """Toolchain selection policy. ``auto`` prefers the embedded toolchain and falls back to a
    system interpreter."""
    python: Optional[str] = None
    """Explicit system interpreter, tried before any other candidate."""
    embedded_archive: Optional[Path] = None
    """Embedded toolchain archive. ``None`` uses the archive bundled with the package, if any."""
    lock_timeout: float = Field(default=10.0, ge=0)
    """Seconds to wait for the cache lock before failing."""
    profile: OptimizationProfile = Field(default_factory=OptimizationProfile)
    """Optimization profile applied to every build."""

    @classmethod
    def from_env(cls, **overrides) -> "LobConfig":
        """Build a config from the LOB_* environment variables, then apply overrides."""
        values = {
            "cache_root": get_lob_cache_path(),
            "toolchain": get_lob_toolchain(),
            "python": get_lob_python(),
            "embedded_archive": get_lob_embedded_toolchain(),
            "lock_timeout": get_lob_lock_timeout(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
