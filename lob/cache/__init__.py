"""Content-addressed artifact cache.

The cache maps a BuildKey to a compiled artifact and the source it was built from. All writes
are atomic renames, so concurrent lob processes can share one cache root without a mutex.
"""

from .store import ArtifactCache

__all__ = ["ArtifactCache"]
