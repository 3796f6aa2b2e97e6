"""Strong-typed records of the artifact cache."""

from datetime import datetime
from pathlib import Path

from pydantic import Field

from .utils import BaseModelWithDocstrings, FrozenModel, HexDigest


class CacheEntry(FrozenModel):
    """A published artifact and the source it was built from."""

    key: HexDigest
    """The BuildKey digest addressing this entry."""
    artifact_path: Path
    """Path of the executable artifact, ``<root>/binaries/<key>``."""
    source_path: Path
    """Path of the generated source, ``<root>/sources/<key>.src``."""
    size: int = Field(gt=0)
    """Size of the artifact in bytes."""
    created_at: datetime
    """Modification time of the artifact, i.e. when it was published."""


class CacheStats(BaseModelWithDocstrings):
    """Aggregate statistics over the published artifacts."""

    count: int = Field(default=0, ge=0)
    """Number of artifacts in the cache."""
    total_bytes: int = Field(default=0, ge=0)
    """Sum of the artifact sizes in bytes."""

    def format_size(self) -> str:
        """Human-readable total size, e.g. ``1.50 MB``."""
        kb = 1024
        mb = 1024 * kb
        gb = 1024 * mb
        if self.total_bytes >= gb:
            return f"{self.total_bytes / gb:.2f} GB"
        if self.total_bytes >= mb:
            return f"{self.total_bytes / mb:.2f} MB"
        if self.total_bytes >= kb:
            return f"{self.total_bytes / kb:.2f} KB"
        return f"{self.total_bytes} B"
