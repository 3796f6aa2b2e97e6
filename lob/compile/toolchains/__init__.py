"""Compiler toolchain strategies: a bundled interpreter or one already on the machine."""

from .base import Toolchain, make_descriptor, probe_interpreter, support_digest
from .embedded import EmbeddedToolchain
from .system import SystemToolchain

__all__ = [
    "EmbeddedToolchain",
    "SystemToolchain",
    "Toolchain",
    "make_descriptor",
    "probe_interpreter",
    "support_digest",
]
