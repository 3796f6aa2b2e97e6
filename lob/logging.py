"""Logging helpers. Every lob logger is a child of the ``lob`` logger."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

from lob.env import get_lob_log_level

_ROOT_LOGGER_NAME = "lob"
_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_handler: Optional[logging.Handler] = None


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``lob`` namespace, e.g. ``get_logger("ArtifactCache")``."""
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Install a single stderr handler on the ``lob`` logger.

    Calling it again only updates the level.

    Parameters
    ----------
    level : Optional[Union[int, str]]
        Logging level. Defaults to the environment variable LOB_LOG_LEVEL, or WARNING.

    Returns
    -------
    logging.Logger
        The ``lob`` root logger.
    """
    global _handler
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    if level is None:
        level = get_lob_log_level()
    if isinstance(level, str):
        level = level.upper()
    root.setLevel(level)
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(_handler)
        root.propagate = False
    return root
