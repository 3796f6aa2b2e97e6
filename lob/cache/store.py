"""Content-addressed store of compiled artifacts."""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from contextlib import contextmanager, suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from lob.data import BuildKey, CacheEntry, CacheStats
from lob.errors import CacheError
from lob.logging import get_logger
from lob.utils import hold_lock, staged_file

logger = get_logger("ArtifactCache")

_ARTIFACT_MODE = 0o755
_SOURCE_MODE = 0o644


class ArtifactCache:
    """Durable, concurrency-safe mapping from BuildKey to compiled artifact.

    Layout under the cache root::

        binaries/<key>        executable artifact
        sources/<key>.src     generated source, for inspection
        tmp/                  staging area for atomic publishing
        .lock                 coarse lock taken by clear() and by the publish step of store()

    ``lookup`` never takes the lock. ``store`` stages both files without the lock and only holds
    it while renaming them into place, so ``clear`` cannot interleave with a publish. Readers
    see either no entry or a complete one.
    """

    _BINARIES_DIR = "binaries"
    _SOURCES_DIR = "sources"
    _STAGING_DIR = "tmp"
    _LOCK_FILE = ".lock"
    _SOURCE_SUFFIX = ".src"

    def __init__(self, root: Path, lock_timeout: float = 10.0) -> None:
        """Initialize the cache.

        Parameters
        ----------
        root : Path
            The cache root. Created on first write.
        lock_timeout : float
            Seconds ``clear`` and ``store`` wait for the cache lock before raising CacheError.
        """
        self.root = Path(root)
        self.lock_timeout = lock_timeout

    @property
    def binaries_dir(self) -> Path:
        return self.root / self._BINARIES_DIR

    @property
    def sources_dir(self) -> Path:
        return self.root / self._SOURCES_DIR

    @property
    def staging_root(self) -> Path:
        return self.root / self._STAGING_DIR

    @property
    def lock_path(self) -> Path:
        return self.root / self._LOCK_FILE

    def artifact_path(self, key: Union[BuildKey, str]) -> Path:
        """Final path of the artifact for ``key``, whether or not it exists."""
        return self.binaries_dir / str(key)

    def source_path(self, key: Union[BuildKey, str]) -> Path:
        """Final path of the generated source for ``key``, whether or not it exists."""
        return self.sources_dir / f"{key}{self._SOURCE_SUFFIX}"

    def lookup(self, key: Union[BuildKey, str]) -> Optional[CacheEntry]:
        """Find a valid artifact for ``key``.

        An entry is valid when the artifact is a regular, non-empty, readable file with the
        executable bit set. Invalid entries are evicted and reported as a miss.

        Parameters
        ----------
        key : Union[BuildKey, str]
            The build key.

        Returns
        -------
        Optional[CacheEntry]
            The entry on a hit, None on a miss.

        Raises
        ------
        CacheError
            If the artifact could not be inspected for a reason other than its absence.
        """
        path = self.artifact_path(key)
        try:
            st = path.stat()
        except FileNotFoundError:
            logger.debug("Cache miss for %s", key)
            return None
        except OSError as e:
            raise CacheError(f"Failed to inspect cached artifact {path}: {e}") from e

        problem = None
        if not stat.S_ISREG(st.st_mode):
            problem = "not a regular file"
        elif st.st_size == 0:
            problem = "empty"
        elif not st.st_mode & stat.S_IXUSR:
            problem = "not executable"
        elif not os.access(path, os.R_OK | os.X_OK):
            problem = "not readable or executable by this user"
        if problem is not None:
            logger.warning("Ignoring corrupt cache entry %s (%s)", path, problem)
            try:
                self.evict(key)
            except OSError as e:
                raise CacheError(f"Failed to evict corrupt cache entry {path}: {e}") from e
            return None

        logger.debug("Cache hit for %s", key)
        return CacheEntry(
            key=str(key),
            artifact_path=path,
            source_path=self.source_path(key),
            size=st.st_size,
            created_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def store(
        self, key: Union[BuildKey, str], artifact: Union[bytes, Path], source_text: str
    ) -> CacheEntry:
        """Publish an artifact and its source under ``key``.

        Both files are written to uniquely named temporary files under ``tmp/`` and renamed
        into place only after the write is complete and verified. The artifact is renamed last,
        so an entry becomes visible to ``lookup`` only once its source is in place too.
        Publishing the same key twice is idempotent because the key is a function of content.

        Parameters
        ----------
        key : Union[BuildKey, str]
            The build key.
        artifact : Union[bytes, Path]
            The artifact content, or the path of a file holding it.
        source_text : str
            The generated source the artifact was compiled from.

        Returns
        -------
        CacheEntry
            The published entry.

        Raises
        ------
        CacheError
            If anything fails. No file is left at the final artifact path in that case.
        """
        artifact_dest = self.artifact_path(key)
        source_dest = self.source_path(key)
        source_bytes = source_text.encode("utf-8")
        try:
            with staged_file(
                artifact_dest, self.staging_root, _ARTIFACT_MODE
            ) as staged_artifact, staged_file(
                source_dest, self.staging_root, _SOURCE_MODE
            ) as staged_source:
                if isinstance(artifact, (bytes, bytearray)):
                    staged_artifact.write_bytes(bytes(artifact))
                    expected_size = len(artifact)
                else:
                    staged_artifact.copy_from(Path(artifact))
                    expected_size = Path(artifact).stat().st_size
                if expected_size == 0:
                    raise CacheError(f"Refusing to cache an empty artifact for {key}")
                staged_source.write_bytes(source_bytes)

                with hold_lock(self.lock_path, self.lock_timeout, "publish an artifact"):
                    staged_source.publish(expected_size=len(source_bytes))
                    staged_artifact.publish(expected_size=expected_size)
        except CacheError:
            raise
        except OSError as e:
            raise CacheError(f"Failed to store artifact for {key}: {e}") from e

        logger.info("Stored artifact %s (%d bytes)", artifact_dest, expected_size)
        entry = self.lookup(key)
        if entry is None:
            # Removed by a concurrent clear() right after publishing.
            raise CacheError(f"Artifact for {key} disappeared right after publishing")
        return entry

    def evict(self, key: Union[BuildKey, str]) -> None:
        """Remove the entry for ``key``, if present. Used for corruption recovery."""
        for path in (self.artifact_path(key), self.source_path(key)):
            with suppress(FileNotFoundError):
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()

    def stats(self) -> CacheStats:
        """Count the published artifacts and sum their sizes.

        Raises
        ------
        CacheError
            If the binaries directory cannot be scanned.
        """
        count = 0
        total = 0
        try:
            entries = list(os.scandir(self.binaries_dir))
        except FileNotFoundError:
            return CacheStats()
        except OSError as e:
            raise CacheError(f"Failed to scan {self.binaries_dir}: {e}") from e
        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=False):
                    count += 1
                    total += entry.stat(follow_symlinks=False).st_size
            except FileNotFoundError:
                # Evicted or cleared while scanning.
                continue
        return CacheStats(count=count, total_bytes=total)

    def clear(self) -> None:
        """Remove every entry.

        Takes the coarse cache lock, waiting at most ``lock_timeout`` seconds. Builds in flight
        keep their staged files and publish them after the lock is released.

        Raises
        ------
        CacheError
            If the lock cannot be acquired in time or an entry cannot be removed.
        """
        with hold_lock(self.lock_path, self.lock_timeout, "clear the cache"):
            removed = 0
            for directory in (self.binaries_dir, self.sources_dir):
                try:
                    entries = list(os.scandir(directory))
                except FileNotFoundError:
                    continue
                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            shutil.rmtree(entry.path)
                        else:
                            os.unlink(entry.path)
                    except FileNotFoundError:
                        continue
                    except OSError as e:
                        raise CacheError(f"Failed to remove {entry.path}: {e}") from e
                    removed += 1
        logger.info("Cleared cache at %s (%d files removed)", self.root, removed)

    @contextmanager
    def staging_dir(self) -> Iterator[Path]:
        """A scratch directory inside the cache root, removed on exit.

        Compiler output is written here so that publishing it is a same-filesystem operation.
        """
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
            path = Path(tempfile.mkdtemp(prefix="build-", dir=self.staging_root))
        except OSError as e:
            raise CacheError(f"Failed to create a staging directory in {self.root}: {e}") from e
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)
