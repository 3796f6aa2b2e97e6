"""Data layer with strongly-typed pydantic models for lob."""

from .build import (
    BuildKey,
    BuildResult,
    Diagnostic,
    OptimizationProfile,
    Severity,
    SourceLocation,
)
from .cache import CacheEntry, CacheStats
from .expression import (
    Expression,
    GeneratedSource,
    InputFormat,
    InputMode,
    OutputFormat,
    RangeSpec,
)
from .toolchain import ToolchainDescriptor, ToolchainOrigin

__all__ = [
    # Expression types
    "Expression",
    "InputMode",
    "InputFormat",
    "OutputFormat",
    "RangeSpec",
    "GeneratedSource",
    # Build types
    "BuildKey",
    "BuildResult",
    "Diagnostic",
    "OptimizationProfile",
    "Severity",
    "SourceLocation",
    # Cache types
    "CacheEntry",
    "CacheStats",
    # Toolchain types
    "ToolchainDescriptor",
    "ToolchainOrigin",
]
