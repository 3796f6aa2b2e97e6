"""Bounded acquisition of the coarse cache lock."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from tvm_ffi.utils import FileLock

from lob.errors import CacheError


@contextmanager
def hold_lock(path: Path, timeout: float, purpose: str) -> Iterator[None]:
    """Hold an exclusive, cross-process lock on ``path`` for the duration of the block.

    Parameters
    ----------
    path : Path
        The lock file. Created if missing.
    timeout : float
        Seconds to wait before giving up. Waiting is never unbounded.
    purpose : str
        What the lock is taken for, used in the error message.

    Raises
    ------
    CacheError
        If the lock could not be acquired within ``timeout`` seconds.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(path))
    try:
        acquired = lock.blocking_acquire(timeout=timeout, poll_interval=0.05)
    except TimeoutError as e:
        raise CacheError(
            f"Timed out after {timeout:g}s waiting for the cache lock {path} to {purpose}. "
            "Another lob process is using the cache; retry later."
        ) from e
    if acquired is False:
        raise CacheError(f"Could not acquire the cache lock {path} to {purpose}")
    try:
        yield
    finally:
        lock.release()
