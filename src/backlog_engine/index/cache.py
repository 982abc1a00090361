"""Explicit, session-owned cache for the agent registry and the item index."""

from __future__ import annotations

import structlog

from backlog_engine.config.settings import EngineSettings
from backlog_engine.index.agents import AgentRegistry
from backlog_engine.index.snapshot import IndexSnapshot, build_snapshot

_logger = structlog.get_logger(__name__)


class IndexCache:
    """
    Lifecycle: absent -> built on first use -> valid -> explicitly cleared.

    ``build``, ``get_or_build`` and ``invalidate`` are the only mutators. Nothing
    rebuilds implicitly: callers take one snapshot at the start of a run.
    """

    __slots__ = ("_settings", "_agents", "_snapshot", "_builds")

    def __init__(self, settings: EngineSettings) -> None:
        self._settings = settings
        self._agents: AgentRegistry | None = None
        self._snapshot: IndexSnapshot | None = None
        self._builds = 0

    @property
    def is_built(self) -> bool:
        return self._snapshot is not None

    @property
    def build_count(self) -> int:
        return self._builds

    def build(self) -> IndexSnapshot:
        """Rebuild both caches from disk."""

        agents = AgentRegistry.build(self._settings)
        snapshot = build_snapshot(self._settings, agents=agents)
        self._agents = agents
        self._snapshot = snapshot
        self._builds += 1
        return snapshot

    def get_or_build(self) -> IndexSnapshot:
        if self._snapshot is None:
            return self.build()
        return self._snapshot

    def agents(self) -> AgentRegistry:
        if self._agents is None:
            return self.build().agents
        return self._agents

    def invalidate(self) -> None:
        if self._snapshot is not None or self._agents is not None:
            _logger.debug("index_cache_invalidated")
        self._agents = None
        self._snapshot = None


__all__ = ["IndexCache"]
