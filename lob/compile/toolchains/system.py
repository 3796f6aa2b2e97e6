"""Toolchain backed by a Python interpreter installed on the machine."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from lob.data import ToolchainDescriptor, ToolchainOrigin
from lob.errors import ToolchainError
from lob.logging import get_logger
from lob.runtime import support_root

from .base import Toolchain, make_descriptor

logger = get_logger("SystemToolchain")

_PATH_NAMES = ("python3", "python")


class SystemToolchain(Toolchain):
    """Uses an existing interpreter as the compiler.

    Candidates are tried in order: the explicit interpreter from the configuration
    (``LOB_PYTHON``), the interpreter running lob, then ``python3`` and ``python`` on ``PATH``.
    The first candidate that answers the probe wins.
    """

    origin = ToolchainOrigin.SYSTEM

    def candidates(self) -> List[Path]:
        """Existing candidate interpreters in resolution order, without duplicates."""
        names: List[Optional[str]] = [self.config.python, sys.executable]
        names.extend(shutil.which(name) for name in _PATH_NAMES)
        seen = set()
        result = []
        for name in names:
            if not name:
                continue
            path = _locate(name)
            if path is None or str(path) in seen:
                continue
            seen.add(str(path))
            result.append(path)
        return result

    def is_available(self) -> bool:
        return bool(self.candidates())

    def _resolve(self) -> ToolchainDescriptor:
        if self.config.python and _locate(self.config.python) is None:
            logger.warning(
                "Configured interpreter %s does not exist, ignoring it", self.config.python
            )
        failures = []
        for candidate in self.candidates():
            try:
                descriptor = make_descriptor(candidate, support_root(), self.origin)
            except ToolchainError as e:
                logger.debug("Rejected interpreter %s: %s", candidate, e)
                failures.append(str(e))
                continue
            logger.info("Using system interpreter %s (%s)", candidate, descriptor.version)
            return descriptor
        detail = "; ".join(failures) if failures else "no interpreter found"
        raise ToolchainError(
            f"No usable system Python interpreter ({detail}). "
            "Install Python 3.8+ or point LOB_PYTHON at one."
        )


def _locate(name: str) -> Optional[Path]:
    if os.sep in name or (os.altsep and os.altsep in name):
        path = Path(name).expanduser()
        return path if path.is_file() else None
    found = shutil.which(name)
    return Path(found) if found else None
