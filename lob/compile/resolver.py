"""Toolchain selection."""

from __future__ import annotations

from typing import Dict, List, Optional, Type

from lob.config import LobConfig
from lob.data import ToolchainDescriptor
from lob.errors import ToolchainError
from lob.logging import get_logger

from .toolchains import EmbeddedToolchain, SystemToolchain, Toolchain

logger = get_logger("ToolchainResolver")

_TOOLCHAIN_PRIORITY: Dict[str, List[Type[Toolchain]]] = {
    "auto": [EmbeddedToolchain, SystemToolchain],
    "embedded": [EmbeddedToolchain],
    "system": [SystemToolchain],
}
"""Toolchain types in priority order for each selection policy."""


class ToolchainResolver:
    """Selects the toolchain used for every build of one lob process.

    Under the ``auto`` policy the embedded toolchain is preferred and a system interpreter is
    the fallback; ``embedded`` and ``system`` force one strategy. The first toolchain that
    resolves is memoized, so the probe runs at most once per resolver.
    """

    def __init__(
        self, config: LobConfig, toolchains: Optional[List[Toolchain]] = None
    ) -> None:
        """Initialize the resolver.

        Parameters
        ----------
        config : LobConfig
            The lob configuration; ``config.toolchain`` selects the policy.
        toolchains : Optional[List[Toolchain]]
            Toolchains to try in order, overriding the policy. Mainly for tests.

        Raises
        ------
        ValueError
            If the policy is unknown or ``toolchains`` is empty.
        """
        if toolchains is None:
            try:
                types = _TOOLCHAIN_PRIORITY[config.toolchain]
            except KeyError as e:
                raise ValueError(f"Unknown toolchain policy '{config.toolchain}'") from e
            toolchains = [t(config) for t in types]
        if len(toolchains) == 0:
            raise ValueError("ToolchainResolver requires at least one toolchain")
        self.config = config
        self._toolchains = list(toolchains)
        self._selected: Optional[Toolchain] = None

    @property
    def toolchains(self) -> List[Toolchain]:
        return list(self._toolchains)

    def resolve(self) -> Toolchain:
        """Select the toolchain, resolving it if needed.

        Returns
        -------
        Toolchain
            The first toolchain, in priority order, that is available and resolves. Its
            descriptor is available through ``descriptor()``.

        Raises
        ------
        ToolchainError
            If no toolchain can be used. The message lists why each one was rejected.
        """
        if self._selected is not None:
            return self._selected

        failures = []
        for toolchain in self._toolchains:
            name = type(toolchain).__name__
            if not toolchain.is_available():
                logger.debug("%s is not available", name)
                failures.append(f"{name}: not available")
                continue
            try:
                toolchain.resolve()
            except ToolchainError as e:
                # A broken embedded archive falls through to the next strategy.
                logger.warning("%s failed to resolve: %s", name, e)
                failures.append(f"{name}: {e}")
                continue
            self._selected = toolchain
            return toolchain

        raise ToolchainError(
            f"No usable toolchain under policy '{self.config.toolchain}'. "
            + " | ".join(failures)
            + ". Install Python 3.8+ or set LOB_PYTHON; set LOB_TOOLCHAIN=system to skip the "
            "embedded toolchain."
        )

    def descriptor(self) -> ToolchainDescriptor:
        """The descriptor of the selected toolchain."""
        return self.resolve().resolve()
