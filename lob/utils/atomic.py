"""Write-to-temporary-then-rename publishing.

Every mutating disk write in lob goes through this module: content is staged under a staging
directory on the same filesystem as its destination and only becomes visible through a single
``os.replace``/``os.rename``. Readers therefore never observe a partially written file or
directory, and racing writers of identical content are harmless.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Iterator, Optional

from lob.logging import get_logger

logger = get_logger("atomic")


def _fsync(path: Path) -> None:
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class StagedFile:
    """A temporary file waiting to be published at its destination.

    Parameters
    ----------
    path : Path
        The temporary path to write to.
    dest : Path
        The final path. Nothing exists there because of this object until ``publish``.
    mode : Optional[int]
        Permission bits applied before publishing.
    """

    def __init__(self, path: Path, dest: Path, mode: Optional[int] = None) -> None:
        self.path = path
        self.dest = dest
        self.mode = mode
        self.published = False

    def write_bytes(self, data: bytes) -> None:
        self.path.write_bytes(data)

    def copy_from(self, src: Path) -> None:
        shutil.copyfile(src, self.path)

    def publish(self, expected_size: Optional[int] = None) -> Path:
        """Verify the staged content and rename it onto the destination.

        Parameters
        ----------
        expected_size : Optional[int]
            If given, the staged file must have exactly this size.

        Returns
        -------
        Path
            The destination path.

        Raises
        ------
        OSError
            If the staged file is incomplete or the rename fails. The destination is untouched.
        """
        size = self.path.stat().st_size
        if expected_size is not None and size != expected_size:
            raise OSError(
                f"Staged file {self.path} has {size} bytes, expected {expected_size}"
            )
        if self.mode is not None:
            os.chmod(self.path, self.mode)
        _fsync(self.path)
        # The destination directory may have been removed while the content was staged.
        self.dest.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self.path, self.dest)
        self.published = True
        return self.dest

    def discard(self) -> None:
        with suppress(FileNotFoundError):
            self.path.unlink()


@contextmanager
def staged_file(
    dest: Path, staging_dir: Path, mode: Optional[int] = None
) -> Iterator[StagedFile]:
    """Stage a file for ``dest`` inside ``staging_dir``.

    The caller writes to ``staged.path`` and calls ``staged.publish()`` once the content is
    complete. If the block exits without publishing, or raises, the temporary file is removed
    and ``dest`` is left as it was.

    Examples
    --------
    >>> with staged_file(root / "binaries" / key, root / "tmp", mode=0o755) as staged:
    ...     staged.write_bytes(data)
    ...     staged.publish(expected_size=len(data))
    """
    staging_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=staging_dir)
    os.close(fd)
    staged = StagedFile(Path(tmp), dest, mode)
    try:
        yield staged
    finally:
        if not staged.published:
            staged.discard()


class StagedDirectory:
    """A temporary directory waiting to be published at its destination."""

    def __init__(self, path: Path, dest: Path) -> None:
        self.path = path
        self.dest = dest
        self.published = False

    def publish(self) -> bool:
        """Rename the staged directory onto the destination.

        Returns
        -------
        bool
            True if this call published the directory, False if another writer published the
            destination first. In that case the staged copy is discarded.
        """
        self.dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.rename(self.path, self.dest)
        except OSError:
            if not self.dest.is_dir():
                raise
            logger.debug("Lost publish race for %s, discarding staged copy", self.dest)
            self.discard()
            return False
        self.published = True
        return True

    def discard(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)


@contextmanager
def staged_directory(dest: Path, staging_dir: Path) -> Iterator[StagedDirectory]:
    """Stage a directory for ``dest`` inside ``staging_dir``; the counterpart of ``staged_file``.

    The staged directory is removed on exit unless ``publish`` moved it into place.
    """
    staging_dir.mkdir(parents=True, exist_ok=True)
    path = staging_dir / f".{dest.name}.{uuid.uuid4().hex}.tmp"
    path.mkdir()
    staged = StagedDirectory(path, dest)
    try:
        yield staged
    finally:
        if not staged.published:
            staged.discard()
