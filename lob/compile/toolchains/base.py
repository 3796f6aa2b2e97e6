"""Abstract base class for compiler toolchains."""

from __future__ import annotations

import hashlib
import json
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

from lob.config import LobConfig
from lob.data import BuildResult, GeneratedSource, ToolchainDescriptor, ToolchainOrigin
from lob.errors import ToolchainError
from lob.runtime import support_files

from ..invoker import CompilerInvoker

MIN_PYTHON = (3, 8)
"""Oldest interpreter able to run the build driver and the produced artifacts."""

PROBE_TIMEOUT = 30.0
"""Seconds a candidate interpreter gets to answer the probe."""

_PROBE_SCRIPT = (
    "import platform, sys; "
    "print(sys.implementation.cache_tag); "
    "print(platform.python_version())"
)


def probe_interpreter(executable: Path) -> Tuple[str, str]:
    """Ask an interpreter for its version and bytecode cache tag.

    Parameters
    ----------
    executable : Path
        The interpreter to probe.

    Returns
    -------
    Tuple[str, str]
        The version (e.g. ``3.12.4``) and the cache tag (e.g. ``cpython-312``).

    Raises
    ------
    ToolchainError
        If the interpreter cannot be launched, does not answer, or is too old.
    """
    try:
        proc = subprocess.run(
            [str(executable), "-I", "-c", _PROBE_SCRIPT],
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ToolchainError(f"Failed to launch {executable}: {e}") from e
    lines = proc.stdout.splitlines()
    if proc.returncode != 0 or len(lines) < 2:
        detail = proc.stderr.strip() or f"exit status {proc.returncode}"
        raise ToolchainError(f"{executable} is not a working Python interpreter: {detail}")
    cache_tag, version = lines[0].strip(), lines[1].strip()
    if cache_tag in ("", "None"):
        raise ToolchainError(f"{executable} cannot write bytecode (no cache tag)")
    if _version_tuple(version) < MIN_PYTHON:
        raise ToolchainError(
            f"{executable} is Python {version}; lob needs Python "
            f"{'.'.join(map(str, MIN_PYTHON))} or newer"
        )
    return version, cache_tag


def _version_tuple(version: str) -> Tuple[int, ...]:
    parts = []
    for part in version.split(".")[:2]:
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def support_digest(support_root: Path) -> str:
    """Digest over the build driver and support package under ``support_root``."""
    h = hashlib.sha256()
    for path in support_files(support_root):
        h.update(path.relative_to(support_root).as_posix().encode("utf-8"))
        h.update(b"\0")
        try:
            h.update(path.read_bytes())
        except OSError as e:
            raise ToolchainError(f"Support library file {path} is unreadable: {e}") from e
        h.update(b"\0")
    return h.hexdigest()


def make_descriptor(
    compiler: Path, support_root: Path, origin: ToolchainOrigin
) -> ToolchainDescriptor:
    """Probe ``compiler`` and fingerprint it together with its support library."""
    compiler = Path(os.path.abspath(compiler))
    version, cache_tag = probe_interpreter(compiler)
    payload = {
        "origin": origin.value,
        "compiler": str(compiler),
        "version": version,
        "cache_tag": cache_tag,
        "support": support_digest(support_root),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return ToolchainDescriptor(
        compiler=compiler,
        support_root=support_root,
        origin=origin,
        version=version,
        cache_tag=cache_tag,
        fingerprint=hashlib.sha256(canonical.encode("utf-8")).hexdigest(),
    )


class Toolchain(ABC):
    """A strategy for obtaining a compiler.

    Concrete toolchains differ in where the interpreter comes from; compiling is the same for
    all of them and is delegated to ``CompilerInvoker``.
    """

    origin: ToolchainOrigin
    """Origin recorded in the descriptors this toolchain resolves."""

    def __init__(self, config: LobConfig) -> None:
        """Initialize the toolchain.

        Parameters
        ----------
        config : LobConfig
            The lob configuration. Supplies the cache root, the interpreter override and the
            optimization profile.
        """
        self.config = config
        self._descriptor: Optional[ToolchainDescriptor] = None

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap check whether ``resolve`` has a chance of succeeding.

        Returns
        -------
        bool
            True if the toolchain's prerequisites are present.
        """
        ...

    @abstractmethod
    def _resolve(self) -> ToolchainDescriptor:
        """Locate, verify and probe the compiler. Called at most once per successful resolve."""
        ...

    def resolve(self) -> ToolchainDescriptor:
        """Resolve the toolchain into a descriptor. The result is memoized.

        Raises
        ------
        ToolchainError
            If the toolchain is unusable.
        """
        if self._descriptor is None:
            self._descriptor = self._resolve()
        return self._descriptor

    def compile(
        self,
        source: GeneratedSource,
        descriptor: ToolchainDescriptor,
        workdir: Path,
        invoker: Optional[CompilerInvoker] = None,
    ) -> BuildResult:
        """Compile ``source`` with the resolved ``descriptor`` into ``workdir``.

        Parameters
        ----------
        source : GeneratedSource
            The program to compile.
        descriptor : ToolchainDescriptor
            A descriptor returned by ``resolve``.
        workdir : Path
            Scratch directory receiving the program and the artifact.
        invoker : Optional[CompilerInvoker]
            The invoker to run. Defaults to one using the configured optimization profile.
        """
        invoker = invoker or CompilerInvoker(self.config.profile)
        return invoker.compile(source, descriptor, workdir)
