"""Filesystem helpers shared by the cache and the toolchain resolver."""

from .atomic import (
    StagedDirectory,
    StagedFile,
    staged_directory,
    staged_file,
)
from .locking import hold_lock

__all__ = [
    "StagedDirectory",
    "StagedFile",
    "hold_lock",
    "staged_directory",
    "staged_file",
]
