"""Runs the build driver under a resolved toolchain."""

from __future__ import annotations

import subprocess
import time
from pathlib import Path
from typing import List, Optional

from lob.data import (
    BuildResult,
    GeneratedSource,
    OptimizationProfile,
    Severity,
    ToolchainDescriptor,
)
from lob.errors import ToolchainError
from lob.logging import get_logger
from lob.runtime import BUILD_DRIVER

from .diagnostics import parse_diagnostics

logger = get_logger("CompilerInvoker")


class CompilerInvoker:
    """Compiles generated programs into artifacts in a scratch directory.

    Compilation problems in the user's expression are returned as diagnostics, never raised:
    callers decide whether a failed BuildResult becomes a CompileError. Only an unusable
    compiler raises.
    """

    SOURCE_NAME = "pipeline.py"
    """File name of the generated program inside the work directory."""

    ARTIFACT_NAME = "pipeline.lob"
    """File name of the artifact inside the work directory."""

    def __init__(
        self, profile: Optional[OptimizationProfile] = None, timeout: Optional[float] = None
    ) -> None:
        """Initialize the invoker.

        Parameters
        ----------
        profile : Optional[OptimizationProfile]
            The optimization profile. Defaults to the release profile.
        timeout : Optional[float]
            Seconds the compiler may run. None waits indefinitely.
        """
        self.profile = profile or OptimizationProfile()
        self.timeout = timeout

    def command(
        self, toolchain: ToolchainDescriptor, source_path: Path, artifact_path: Path
    ) -> List[str]:
        """The compiler command line for one build."""
        return [
            str(toolchain.compiler),
            "-I",
            str(toolchain.support_root / BUILD_DRIVER),
            "--source",
            str(source_path),
            "--output",
            str(artifact_path),
            "--support",
            str(toolchain.support_root),
            "--optimize",
            str(self.profile.level),
        ]

    def compile(
        self, source: GeneratedSource, toolchain: ToolchainDescriptor, workdir: Path
    ) -> BuildResult:
        """Compile ``source`` into ``workdir``.

        Parameters
        ----------
        source : GeneratedSource
            The program to compile.
        toolchain : ToolchainDescriptor
            The resolved toolchain.
        workdir : Path
            An existing scratch directory. The program and the artifact are written here.

        Returns
        -------
        BuildResult
            On success, the temporary artifact path (plus any warnings); otherwise the
            diagnostics and the raw compiler stderr.

        Raises
        ------
        ToolchainError
            If the compiler executable is missing, cannot be launched, or times out.
        """
        workdir = Path(workdir)
        source_path = workdir / self.SOURCE_NAME
        artifact_path = workdir / self.ARTIFACT_NAME
        source_path.write_text(source.text, encoding="utf-8")

        cmd = self.command(toolchain, source_path, artifact_path)
        logger.debug("Running compiler: %s", " ".join(cmd))
        start = time.perf_counter()
        try:
            proc = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
                cwd=workdir,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ToolchainError(f"Compiler {toolchain.compiler} not found") from e
        except PermissionError as e:
            raise ToolchainError(f"Compiler {toolchain.compiler} is not executable") from e
        except subprocess.TimeoutExpired as e:
            raise ToolchainError(
                f"Compiler {toolchain.compiler} did not finish within {self.timeout} seconds"
            ) from e
        except OSError as e:
            raise ToolchainError(f"Failed to launch compiler {toolchain.compiler}: {e}") from e
        elapsed = time.perf_counter() - start

        failed = proc.returncode != 0 or not _nonempty(artifact_path)
        diagnostics = parse_diagnostics(proc.stderr, source, self.SOURCE_NAME, failed=failed)
        if failed:
            logger.info(
                "Compilation failed after %.2fs with %d error(s)",
                elapsed,
                sum(1 for d in diagnostics if d.severity == Severity.ERROR),
            )
            return BuildResult(artifact=None, diagnostics=diagnostics, stderr=proc.stderr)

        logger.info("Compiled %s in %.2fs", artifact_path, elapsed)
        return BuildResult(artifact=artifact_path, diagnostics=diagnostics, stderr=proc.stderr)


def _nonempty(path: Path) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False
