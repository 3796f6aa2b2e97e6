"""Strong-typed definitions for build keys, compiler diagnostics and build results."""

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field

from .expression import GeneratedSource
from .toolchain import ToolchainDescriptor
from .utils import FrozenModel, HexDigest, NonEmptyString

BUILD_KEY_FORMAT = 1
"""Version of the BuildKey payload layout. Bumping it invalidates every cached artifact."""


class OptimizationProfile(FrozenModel):
    """Compiler settings applied to every build.

    lob always compiles at the maximal level: the compile cost is paid once and every later run
    reuses the artifact.
    """

    name: Literal["release"] = "release"
    """Profile name, recorded for inspection."""
    level: Literal[2] = 2
    """Bytecode optimization level passed to the build driver."""


class BuildKey(FrozenModel):
    """Content address of an artifact.

    The digest covers the generated source, the toolchain fingerprint and the optimization
    profile, so an upgraded interpreter or a different profile never reuses a stale artifact.
    """

    digest: HexDigest
    """Lowercase hex SHA-256 digest."""

    @classmethod
    def compute(
        cls,
        source: GeneratedSource,
        toolchain: ToolchainDescriptor,
        profile: OptimizationProfile,
    ) -> "BuildKey":
        """Derive the key of a build from its inputs.

        Parameters
        ----------
        source : GeneratedSource
            The program to compile.
        toolchain : ToolchainDescriptor
            The resolved toolchain. Only its fingerprint enters the digest.
        profile : OptimizationProfile
            The optimization profile.

        Returns
        -------
        BuildKey
            The key. Identical inputs always yield the same key.
        """
        payload = {
            "format": BUILD_KEY_FORMAT,
            "source": source.sha256(),
            "toolchain": toolchain.fingerprint,
            "profile": profile.model_dump(mode="json"),
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return cls(digest=hashlib.sha256(canonical.encode("utf-8")).hexdigest())

    def __str__(self) -> str:
        return self.digest


class Severity(str, Enum):
    """Severity of a compiler diagnostic."""

    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"


class SourceLocation(FrozenModel):
    """Position a diagnostic refers to.

    When ``in_expression`` is true, ``line`` is relative to the user expression; otherwise it is
    a line of the generated scaffolding. The mapping is best effort.
    """

    line: int = Field(ge=1)
    """1-based line number."""
    column: Optional[int] = Field(default=None, ge=1)
    """1-based column number, if the compiler reported one."""
    in_expression: bool
    """Whether the position lies inside the user expression."""

    def describe(self) -> str:
        where = "expression" if self.in_expression else "generated code"
        if self.column is None:
            return f"{where} line {self.line}"
        return f"{where} line {self.line}, column {self.column}"


class Diagnostic(FrozenModel):
    """A single message reported by the compiler."""

    severity: Severity
    """Error, warning or note."""
    message: NonEmptyString
    """The compiler's message text."""
    code: Optional[str] = None
    """Compiler-specific error class, e.g. ``SyntaxError``."""
    location: Optional[SourceLocation] = None
    """Where the problem is, when known."""
    hint: Optional[str] = None
    """A suggestion for fixing common mistakes."""

    def render(self) -> str:
        """Plain one-or-two line rendering used by the CLI."""
        label = self.severity.value if self.code is None else f"{self.severity.value}[{self.code}]"
        text = f"{label}: {self.message}"
        if self.location is not None:
            text += f" ({self.location.describe()})"
        if self.hint:
            text += f"\n  hint: {self.hint}"
        return text


class BuildResult(FrozenModel):
    """Outcome of one compiler invocation. Transient, never persisted."""

    artifact: Optional[Path] = None
    """Temporary path of the produced artifact on success."""
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    """Structured diagnostics. Non-empty on failure, may hold warnings on success."""
    stderr: str = ""
    """Raw compiler standard error, kept for verbose reporting."""

    @property
    def ok(self) -> bool:
        return self.artifact is not None

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]
