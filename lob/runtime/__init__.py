"""Files shipped into every build: the build driver and the ``lob_prelude`` support package."""

from pathlib import Path

BUILD_DRIVER = "lobc.py"
PRELUDE_PACKAGE = "lob_prelude"


def support_root() -> Path:
    """Directory holding the build driver and the support package bundled with lob."""
    return Path(__file__).resolve().parent


def support_files(root: Path):
    """The support files under ``root`` that influence every artifact, in a stable order."""
    files = [root / BUILD_DRIVER]
    files.extend(sorted((root / PRELUDE_PACKAGE).glob("*.py")))
    return files
