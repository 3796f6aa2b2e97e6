"""Orchestration of generate, resolve, look up, compile, store and run."""

from __future__ import annotations

import time
from contextlib import suppress
from typing import Any, Dict, Optional, Sequence, Union

from pydantic import Field

from lob.cache import ArtifactCache
from lob.codegen import generate
from lob.compile import (
    CompilerInvoker,
    ExecutionResult,
    Runnable,
    RunnableMetadata,
    ToolchainResolver,
)
from lob.config import LobConfig
from lob.data import (
    BuildKey,
    CacheEntry,
    CacheStats,
    Expression,
    GeneratedSource,
    Severity,
    ToolchainDescriptor,
)
from lob.data.utils import BaseModelWithDocstrings
from lob.errors import ArtifactLaunchError, CacheError, CompileError
from lob.logging import get_logger

logger = get_logger("Pipeline")


class BuildOutcome(BaseModelWithDocstrings):
    """A cached artifact ready to run, and how it was obtained."""

    key: str
    """BuildKey of the artifact."""
    entry: CacheEntry
    """The cache entry holding the artifact."""
    cache_hit: bool
    """True if no compilation was needed."""
    toolchain: ToolchainDescriptor
    """The toolchain the key was computed for."""
    timings: Dict[str, float] = Field(default_factory=dict)
    """Seconds spent per phase."""


class Pipeline:
    """Turns expressions into cached artifacts and runs them.

    Error policy: a ``CacheError`` from lookup, store or artifact launch is treated as a cache
    miss, the entry is evicted and the artifact rebuilt exactly once; a second failure
    propagates. ``ToolchainError`` and ``CompileError`` are never retried.

    Examples
    --------
    >>> pipeline = Pipeline(LobConfig.from_env())
    >>> pipeline.run("_.filter(lambda x: len(x) > 1)", stdin=b"a\\nbb\\nccc\\n").returncode
    0
    """

    def __init__(
        self,
        config: Optional[LobConfig] = None,
        cache: Optional[ArtifactCache] = None,
        resolver: Optional[ToolchainResolver] = None,
        invoker: Optional[CompilerInvoker] = None,
    ) -> None:
        """Initialize the pipeline. Collaborators default to ones built from ``config``."""
        self.config = config if config is not None else LobConfig.from_env()
        self.cache = cache or ArtifactCache(self.config.cache_root, self.config.lock_timeout)
        self.resolver = resolver or ToolchainResolver(self.config)
        self.invoker = invoker or CompilerInvoker(self.config.profile)

    @staticmethod
    def expression(text: Union[Expression, str]) -> Expression:
        """Coerce ``text`` into an Expression, detecting its input mode."""
        if isinstance(text, Expression):
            return text
        return Expression.detect(text)

    def generate(self, expression: Union[Expression, str]) -> GeneratedSource:
        return generate(self.expression(expression))

    def key(self, expression: Union[Expression, str]) -> BuildKey:
        """The BuildKey the expression would be cached under. Resolves the toolchain."""
        source = self.generate(expression)
        return BuildKey.compute(source, self.resolver.descriptor(), self.config.profile)

    def build(self, expression: Union[Expression, str], force: bool = False) -> BuildOutcome:
        """Return a cached artifact for ``expression``, compiling it on a miss.

        Parameters
        ----------
        expression : Union[Expression, str]
            The expression to build.
        force : bool
            Skip the cache lookup and rebuild. Used after a cached artifact failed to launch.

        Returns
        -------
        BuildOutcome
            The published artifact.

        Raises
        ------
        ToolchainError
            If no toolchain is usable.
        CompileError
            If the compiler rejected the program. Nothing is cached in that case.
        CacheError
            If the cache failed twice in a row.
        """
        expression = self.expression(expression)
        timings: Dict[str, float] = {}

        start = time.perf_counter()
        source = generate(expression)
        timings["generate"] = time.perf_counter() - start

        start = time.perf_counter()
        descriptor = self.resolver.descriptor()
        key = BuildKey.compute(source, descriptor, self.config.profile)
        timings["resolve"] = time.perf_counter() - start

        recovered = False
        if not force:
            start = time.perf_counter()
            try:
                entry = self.cache.lookup(key)
            except CacheError as e:
                logger.warning("Cache lookup failed (%s); rebuilding", e)
                self._evict(key)
                recovered = True
                entry = None
            timings["lookup"] = time.perf_counter() - start
            if entry is not None:
                logger.info("Cache hit for %s", key)
                return BuildOutcome(
                    key=str(key), entry=entry, cache_hit=True, toolchain=descriptor, timings=timings
                )

        logger.info("Cache miss for %s, compiling with %s", key, descriptor.compiler)
        while True:
            try:
                entry = self._compile_and_store(expression, source, descriptor, key, timings)
                break
            except CacheError as e:
                if recovered:
                    raise
                logger.warning("Storing the artifact failed (%s); retrying once", e)
                self._evict(key)
                recovered = True
        return BuildOutcome(
            key=str(key), entry=entry, cache_hit=False, toolchain=descriptor, timings=timings
        )

    def _compile_and_store(
        self,
        expression: Expression,
        source: GeneratedSource,
        descriptor: ToolchainDescriptor,
        key: BuildKey,
        timings: Dict[str, float],
    ) -> CacheEntry:
        with self.cache.staging_dir() as workdir:
            start = time.perf_counter()
            toolchain = self.resolver.resolve()
            result = toolchain.compile(source, descriptor, workdir, invoker=self.invoker)
            timings["compile"] = time.perf_counter() - start
            if not result.ok:
                raise CompileError(expression.text, result.errors or result.diagnostics)
            for diagnostic in result.diagnostics:
                if diagnostic.severity != Severity.ERROR:
                    logger.warning("Compiler %s", diagnostic.render())

            start = time.perf_counter()
            entry = self.cache.store(key, result.artifact, source.text)
            timings["store"] = time.perf_counter() - start
        return entry

    def _evict(self, key: BuildKey) -> None:
        with suppress(OSError):
            self.cache.evict(key)

    def run(
        self,
        expression: Union[Expression, str],
        stdin: Any = None,
        stdout: Any = None,
        args: Sequence[str] = (),
    ) -> ExecutionResult:
        """Build ``expression`` if needed and run it.

        ``stdin``, ``stdout`` and ``args`` are passed to ``Runnable.run``. A cached artifact
        that fails to launch is evicted and rebuilt once.

        Returns
        -------
        ExecutionResult
            The child's exit status and the per-phase timings. Call ``check()`` to turn a
            non-zero status into an ExecutionError.
        """
        outcome = self.build(expression)
        try:
            return self._execute(outcome, stdin, stdout, args)
        except ArtifactLaunchError as e:
            logger.warning("Cached artifact failed to launch (%s); rebuilding", e)
            self._evict(BuildKey(digest=outcome.key))
            outcome = self.build(expression, force=True)
            return self._execute(outcome, stdin, stdout, args)

    def _execute(
        self, outcome: BuildOutcome, stdin: Any, stdout: Any, args: Sequence[str]
    ) -> ExecutionResult:
        runnable = Runnable(
            outcome.entry.artifact_path,
            RunnableMetadata(
                key=outcome.key,
                toolchain=outcome.toolchain.origin.value,
                cache_hit=outcome.cache_hit,
                misc={"timings": dict(outcome.timings)},
            ),
        )
        result = runnable.execute(stdin=stdin, stdout=stdout, args=args)
        timings = dict(outcome.timings)
        timings.update(result.timings)
        return result.model_copy(update={"timings": timings})

    def stats(self) -> CacheStats:
        return self.cache.stats()

    def clear(self) -> None:
        self.cache.clear()
