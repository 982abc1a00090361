"""Agent registry, item index snapshots and their session cache."""

from backlog_engine.index.agents import AgentRegistry
from backlog_engine.index.cache import IndexCache
from backlog_engine.index.snapshot import (
    IndexedDocument,
    IndexSnapshot,
    TaskRootError,
    build_snapshot,
    iter_task_documents,
)

__all__ = [
    "AgentRegistry",
    "IndexCache",
    "IndexSnapshot",
    "IndexedDocument",
    "TaskRootError",
    "build_snapshot",
    "iter_task_documents",
]
