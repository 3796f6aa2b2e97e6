"""Compiler subsystem package.

This package turns generated programs into executable artifacts and runs them.
It includes:
- Toolchain: Capability implemented by EmbeddedToolchain and SystemToolchain
- ToolchainResolver: Selects the toolchain once per process according to the policy
- CompilerInvoker: Runs the build driver and translates its diagnostics
- Runnable: Executable wrapper around a compiled artifact

The typical workflow is:
1. Select a toolchain: descriptor = ToolchainResolver(config).descriptor()
2. Compile: result = CompilerInvoker(config.profile).compile(source, descriptor, workdir)
3. Execute: returncode = Runnable(artifact, metadata).run(stdin, stdout)
"""

from .diagnostics import parse_diagnostics, suggest
from .invoker import CompilerInvoker
from .resolver import ToolchainResolver
from .runnable import ExecutionResult, Runnable, RunnableMetadata
from .toolchains import EmbeddedToolchain, SystemToolchain, Toolchain

__all__ = [
    "CompilerInvoker",
    "EmbeddedToolchain",
    "ExecutionResult",
    "Runnable",
    "RunnableMetadata",
    "SystemToolchain",
    "Toolchain",
    "ToolchainResolver",
    "parse_diagnostics",
    "suggest",
]
