"""Strong-typed description of a resolved compiler toolchain."""

from enum import Enum
from pathlib import Path

from .utils import FrozenModel, HexDigest, NonEmptyString


class ToolchainOrigin(str, Enum):
    """Where a toolchain came from."""

    EMBEDDED = "embedded"
    """Extracted from the archive bundled with lob."""
    SYSTEM = "system"
    """An interpreter already installed on the machine."""


class ToolchainDescriptor(FrozenModel):
    """A resolved compiler plus the support library linked into every artifact.

    Resolved once per resolver and immutable afterwards.
    """

    compiler: Path
    """Absolute path of the interpreter that runs the build driver."""
    support_root: Path
    """Directory holding the build driver (``lobc.py``) and the ``lob_prelude`` package."""
    origin: ToolchainOrigin
    """Whether the compiler is embedded or system-installed."""
    version: NonEmptyString
    """Interpreter version reported by the probe, e.g. ``3.12.4``."""
    cache_tag: NonEmptyString
    """Bytecode cache tag reported by the probe, e.g. ``cpython-312``."""
    fingerprint: HexDigest
    """Digest over everything that influences the produced artifacts. Part of the BuildKey."""
