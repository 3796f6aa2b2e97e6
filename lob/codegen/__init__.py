"""Program generation from lob expressions."""

from .generator import GENERATOR_VERSION, generate

__all__ = ["GENERATOR_VERSION", "generate"]
