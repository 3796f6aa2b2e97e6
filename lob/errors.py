"""Exception hierarchy shared by the lob build pipeline."""

from __future__ import annotations

from typing import List, Optional

from lob.data import Diagnostic


class LobError(RuntimeError):
    """Base class of every error raised by lob."""


class GenerationError(LobError):
    """Raised when source generation violates an internal invariant."""


class ToolchainError(LobError):
    """Raised when no usable compiler toolchain can be found. Fatal, never retried."""


class CacheError(LobError):
    """Raised on I/O failures while reading or writing the artifact cache."""


class ArtifactLaunchError(CacheError):
    """Raised when a cached artifact exists but cannot be executed."""


class CompileError(LobError):
    """Raised when the compiler rejects the generated program.

    Parameters
    ----------
    expression : str
        The user expression that was compiled.
    diagnostics : List[Diagnostic]
        The structured diagnostics reported by the compiler.
    """

    def __init__(self, expression: str, diagnostics: List[Diagnostic]) -> None:
        self.expression = expression
        self.diagnostics = list(diagnostics)
        super().__init__(self.render())

    def render(self) -> str:
        lines = ["Compilation failed", f"  expression: {self.expression}"]
        for diagnostic in self.diagnostics:
            lines.extend("  " + line for line in diagnostic.render().splitlines())
        return "\n".join(lines)


class ExecutionError(LobError):
    """Raised when a compiled pipeline exits with a non-zero status and the caller asked for it."""

    def __init__(self, returncode: int, artifact: Optional[str] = None) -> None:
        self.returncode = returncode
        self.artifact = artifact
        if returncode < 0:
            message = f"Pipeline was killed by signal {-returncode}"
        else:
            message = f"Pipeline exited with status {returncode}"
        super().__init__(message)
