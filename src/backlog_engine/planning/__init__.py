"""Dependency graph and scope resolution."""

from backlog_engine.planning.dependency_graph import (
    DependencyGraph,
    canonicalize_cycle,
    format_cycle,
)
from backlog_engine.planning.scope import ScopeMap, resolve_scope

__all__ = [
    "DependencyGraph",
    "ScopeMap",
    "canonicalize_cycle",
    "format_cycle",
    "resolve_scope",
]
