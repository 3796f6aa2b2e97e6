"""Runtime support library linked into every compiled lob pipeline.

Imported with ``from lob_prelude import *`` by generated programs. It depends on the standard
library only and imports its submodules relatively, so the same files work as
``lob.runtime.lob_prelude`` and as the top-level ``lob_prelude`` package inside an artifact.
"""

from .fluent import Lob
from .output import emit, format_item
from .sources import lob, lob_range, read_csv, read_json, read_lines

__all__ = [
    "Lob",
    "emit",
    "format_item",
    "lob",
    "lob_range",
    "read_csv",
    "read_json",
    "read_lines",
]
