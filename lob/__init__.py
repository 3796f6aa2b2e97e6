from lob.cache import ArtifactCache
from lob.codegen import generate
from lob.compile import (
    CompilerInvoker,
    EmbeddedToolchain,
    ExecutionResult,
    Runnable,
    RunnableMetadata,
    SystemToolchain,
    ToolchainResolver,
)
from lob.config import LobConfig
from lob.data import (
    BuildKey,
    BuildResult,
    CacheEntry,
    CacheStats,
    Diagnostic,
    Expression,
    GeneratedSource,
    InputFormat,
    InputMode,
    OptimizationProfile,
    OutputFormat,
    RangeSpec,
    Severity,
    SourceLocation,
    ToolchainDescriptor,
    ToolchainOrigin,
)
from lob.errors import (
    ArtifactLaunchError,
    CacheError,
    CompileError,
    ExecutionError,
    GenerationError,
    LobError,
    ToolchainError,
)
from lob.logging import configure_logging, get_logger
from lob.pipeline import BuildOutcome, Pipeline

__all__ = [
    # Main classes
    "Pipeline",
    "BuildOutcome",
    "LobConfig",
    # Components
    "generate",
    "ArtifactCache",
    "ToolchainResolver",
    "EmbeddedToolchain",
    "SystemToolchain",
    "CompilerInvoker",
    "Runnable",
    "RunnableMetadata",
    "ExecutionResult",
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
    "ToolchainDescriptor",
    "ToolchainOrigin",
    # Cache types
    "CacheEntry",
    "CacheStats",
    # Errors
    "LobError",
    "GenerationError",
    "ToolchainError",
    "CompileError",
    "CacheError",
    "ArtifactLaunchError",
    "ExecutionError",
    # Logging
    "configure_logging",
    "get_logger",
]
