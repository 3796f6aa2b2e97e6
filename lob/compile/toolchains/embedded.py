"""Toolchain shipped with lob as a compressed archive and extracted into the cache on first use."""

from __future__ import annotations

import hashlib
import json
import os
import re
import shutil
import tarfile
from pathlib import Path, PurePosixPath
from typing import Dict, Optional

from lob.data import ToolchainDescriptor, ToolchainOrigin
from lob.errors import ToolchainError
from lob.logging import get_logger
from lob.runtime import BUILD_DRIVER, PRELUDE_PACKAGE, support_root
from lob.utils import staged_directory

from .base import Toolchain, make_descriptor

logger = get_logger("EmbeddedToolchain")

BUNDLED_ARCHIVE = Path(__file__).resolve().parents[2] / "_embedded" / "toolchain.tar.gz"
"""Archive bundled with the lob distribution, when the distribution carries one."""

MANIFEST_NAME = "MANIFEST.json"
"""Archive member describing the compiler and the checksums of the extracted files."""

_TOOLCHAIN_DIR = "toolchain"
_CHUNK_SIZE = 1 << 20
_SHA256_RE = re.compile(r"[0-9a-f]{64}")


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


class EmbeddedToolchain(Toolchain):
    """Extracts a bundled interpreter and uses it as the compiler.

    The archive is a tarball (gzip, bzip2 or xz) accompanied by a ``<archive>.sha256`` sidecar.
    It must contain a ``MANIFEST.json``::

        {"compiler": "bin/python3", "sha256": {"bin/python3": "<hex digest>", ...}}

    It is extracted once, under ``<cache root>/toolchain/<archive digest>/``, by staging the
    whole tree next to its destination and publishing it with a directory rename. Concurrent
    first runs race harmlessly: the loser discards its copy. If the archive also carries
    ``lib/lob_prelude`` and ``lib/lobc.py``, that support library is used instead of the one
    installed with lob.
    """

    origin = ToolchainOrigin.EMBEDDED

    @property
    def archive(self) -> Path:
        return Path(self.config.embedded_archive or BUNDLED_ARCHIVE)

    @property
    def toolchain_root(self) -> Path:
        return self.config.cache_root / _TOOLCHAIN_DIR

    def is_available(self) -> bool:
        return self.archive.is_file()

    def _resolve(self) -> ToolchainDescriptor:
        archive = self.archive
        if not archive.is_file():
            raise ToolchainError(f"No embedded toolchain archive at {archive}")
        digest = self.read_checksum(archive)

        # A published extraction was verified when it was extracted; only re-hash to extract.
        dest = self.toolchain_root / digest
        manifest = self._read_manifest(dest) if dest.is_dir() else None
        if manifest is None:
            self.verify_archive(archive)
            if dest.exists():
                logger.warning("Removing incomplete toolchain extraction at %s", dest)
                shutil.rmtree(dest, ignore_errors=True)
            self.extract(archive, dest)
            manifest = self._read_manifest(dest)
            if manifest is None:
                raise ToolchainError(f"Toolchain archive {archive} has no usable {MANIFEST_NAME}")

        compiler = dest / manifest["compiler"]
        if not compiler.is_file():
            raise ToolchainError(f"Embedded compiler {compiler} is missing")

        lib = dest / "lib"
        if (lib / PRELUDE_PACKAGE / "__init__.py").is_file() and (lib / BUILD_DRIVER).is_file():
            support = lib
        else:
            support = support_root()

        descriptor = make_descriptor(compiler, support, self.origin)
        logger.info("Using embedded toolchain %s (%s)", compiler, descriptor.version)
        return descriptor

    @staticmethod
    def read_checksum(archive: Path) -> str:
        """The digest recorded in the ``.sha256`` sidecar of ``archive``.

        Raises
        ------
        ToolchainError
            If the sidecar is missing, empty or does not hold a SHA-256 hex digest.
        """
        sidecar = archive.with_name(archive.name + ".sha256")
        try:
            expected = sidecar.read_text().split()[0].strip().lower()
        except (OSError, IndexError) as e:
            raise ToolchainError(f"Missing or empty checksum file {sidecar}") from e
        if not _SHA256_RE.fullmatch(expected):
            raise ToolchainError(f"Checksum file {sidecar} does not hold a SHA-256 digest")
        return expected

    @classmethod
    def verify_archive(cls, archive: Path) -> str:
        """Check ``archive`` against its ``.sha256`` sidecar and return its digest.

        Raises
        ------
        ToolchainError
            If the sidecar is missing or the digests differ.
        """
        expected = cls.read_checksum(archive)
        actual = file_sha256(archive)
        if actual != expected:
            raise ToolchainError(
                f"Checksum mismatch for {archive}: expected {expected}, got {actual}. "
                "The archive is corrupt; reinstall lob."
            )
        return actual

    def extract(self, archive: Path, dest: Path) -> bool:
        """Extract ``archive`` to ``dest`` and verify it against its manifest.

        Returns
        -------
        bool
            True if this call published the extraction, False if a concurrent process did.

        Raises
        ------
        ToolchainError
            If the archive is unreadable, unsafe, or does not match its manifest.
        """
        logger.info("First run: extracting embedded toolchain %s to %s", archive.name, dest)
        try:
            with staged_directory(dest, self.toolchain_root) as staged:
                with tarfile.open(archive, "r:*") as tar:
                    _check_members(tar)
                    if hasattr(tarfile, "data_filter"):
                        tar.extractall(staged.path, filter="data")
                    else:
                        tar.extractall(staged.path)
                manifest = self._read_manifest(staged.path)
                if manifest is None:
                    raise ToolchainError(f"Toolchain archive {archive} has no {MANIFEST_NAME}")
                _verify_manifest(staged.path, manifest)
                os.chmod(staged.path / manifest["compiler"], 0o755)
                return staged.publish()
        except (OSError, tarfile.TarError) as e:
            raise ToolchainError(f"Failed to extract toolchain {archive}: {e}") from e

    @staticmethod
    def _read_manifest(root: Path) -> Optional[Dict]:
        path = root / MANIFEST_NAME
        try:
            manifest = json.loads(path.read_text())
        except (OSError, ValueError):
            return None
        if not isinstance(manifest, dict) or not isinstance(manifest.get("compiler"), str):
            return None
        if not isinstance(manifest.get("sha256", {}), dict):
            return None
        if not _is_safe_member(manifest["compiler"]):
            return None
        return manifest


def _is_safe_member(name: str) -> bool:
    path = PurePosixPath(name)
    return not path.is_absolute() and ".." not in path.parts


def _check_members(tar: tarfile.TarFile) -> None:
    for member in tar.getmembers():
        if not _is_safe_member(member.name):
            raise ToolchainError(f"Refusing to extract unsafe archive member {member.name}")
        if member.issym() or member.islnk():
            target = PurePosixPath(member.name).parent / member.linkname
            if member.islnk():
                target = PurePosixPath(member.linkname)
            if not _is_safe_member(str(target)):
                raise ToolchainError(
                    f"Refusing to extract link {member.name} -> {member.linkname}"
                )
        elif member.isdev():
            raise ToolchainError(f"Refusing to extract device file {member.name}")


def _verify_manifest(root: Path, manifest: Dict) -> None:
    checksums: Dict[str, str] = manifest.get("sha256", {})
    if manifest["compiler"] not in checksums:
        raise ToolchainError(f"{MANIFEST_NAME} has no checksum for {manifest['compiler']}")
    for name, expected in checksums.items():
        if not _is_safe_member(name):
            raise ToolchainError(f"{MANIFEST_NAME} lists unsafe path {name}")
        path = root / name
        if not path.is_file():
            raise ToolchainError(f"Toolchain file {name} listed in {MANIFEST_NAME} is missing")
        if file_sha256(path) != str(expected).lower():
            raise ToolchainError(f"Toolchain file {name} does not match its checksum")
