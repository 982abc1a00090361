"""
backlog-engine — cross-file item index

File: src/backlog_engine/index/snapshot.py

Purpose
- Scan the allow-listed task directories, parse every outline document and index the
  Items, Categories and Checkpoints they define.

Functional requirements
- Only ``.org`` files below the configured task directories contribute entities;
  documentation elsewhere under the root never enters the index.
- Duplicate Item IDs keep the first definition for lookups and retain every definition
  for duplicate detection.
- A missing backlog root raises ``TaskRootError``.

Non-functional requirements
- Deterministic scan order (sorted directories and file names).
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import structlog

from backlog_engine.config.settings import EngineSettings
from backlog_engine.constants import DOCUMENT_SUFFIX
from backlog_engine.domain.ids import split_qualified_ref
from backlog_engine.domain.models import Category, Checkpoint, Item, Scope
from backlog_engine.index.agents import AgentRegistry
from backlog_engine.ingestion.entities import DocumentEntities, build_entities
from backlog_engine.outline.parser import OutlineDocument, read_outline
from backlog_engine.planning.dependency_graph import DependencyGraph
from backlog_engine.planning.scope import ScopeMap

_logger = structlog.get_logger(__name__)


class TaskRootError(FileNotFoundError):
    """Raised when the configured backlog root does not exist."""

    def __init__(self, root: Path) -> None:
        self.root = root
        super().__init__(f"backlog root does not exist or is not a directory: {root}")


@dataclass(frozen=True, slots=True)
class IndexedDocument:
    document: OutlineDocument
    entities: DocumentEntities
    scopes: ScopeMap

    @property
    def path(self) -> Path:
        return self.document.path


@dataclass(frozen=True, slots=True)
class IndexSnapshot:
    root: Path
    documents: Mapping[Path, IndexedDocument]
    agents: AgentRegistry
    built_at: datetime
    items: Mapping[str, Item] = field(default_factory=dict)
    item_definitions: Mapping[str, tuple[Item, ...]] = field(default_factory=dict)
    categories: Mapping[str, Category] = field(default_factory=dict)
    checkpoints: Mapping[str, Checkpoint] = field(default_factory=dict)

    def all_items(self) -> Iterator[Item]:
        """Every Item definition in scan order, duplicates included."""

        for indexed in self.documents.values():
            yield from indexed.entities.items

    def all_categories(self) -> Iterator[Category]:
        for indexed in self.documents.values():
            yield from indexed.entities.categories

    def all_checkpoints(self) -> Iterator[Checkpoint]:
        for indexed in self.documents.values():
            yield from indexed.entities.checkpoints

    def resolve_ref(self, ref: str) -> Item | None:
        """Resolve a plain or qualified (``CATEGORY:ITEM``) dependency reference."""

        direct = self.items.get(ref)
        if direct is not None:
            return direct
        category_id, item_id = split_qualified_ref(ref)
        if category_id is None:
            return None
        return self.items.get(item_id)

    def resolved_id(self, ref: str) -> str | None:
        item = self.resolve_ref(ref)
        return None if item is None else item.id

    def dependency_graph(self) -> DependencyGraph:
        """
        Graph over resolved item IDs.

        ``DEPENDS`` adds ``item -> dependency``; ``BLOCKS`` adds the inverse edge
        ``blocked -> item``. Unresolved references contribute no edge.
        """

        graph = DependencyGraph()
        for item in self.all_items():
            if not item.id:
                continue
            graph.add_node(item.id)
            for ref in item.depends:
                target = self.resolved_id(ref)
                if target is not None:
                    graph.add_dependency(item.id, target)
            for ref in item.blocks:
                target = self.resolved_id(ref)
                if target is not None:
                    graph.add_dependency(target, item.id)
        return graph

    def document_for(self, path: Path) -> IndexedDocument | None:
        return self.documents.get(path.resolve())

    def scope_of(self, file: Path, line: int) -> Scope:
        indexed = self.documents.get(file)
        if indexed is None:
            return Scope()
        return indexed.scopes.resolve(line)

    def category_numbers(self, prefix: str) -> tuple[int, ...]:
        numbers = {
            category.number for category in self.all_categories() if category.prefix == prefix
        }
        return tuple(sorted(numbers))

    def is_task_document(self, path: Path) -> bool:
        return path.resolve() in self.documents


def iter_task_documents(settings: EngineSettings) -> Iterator[Path]:
    """Yield outline files below the allow-listed task directories in sorted order."""

    for task_root in settings.task_roots():
        if not task_root.is_dir():
            _logger.debug("task_directory_missing", task_dir=task_root.as_posix())
            continue
        for current_dir, dir_names, file_names in os.walk(task_root, followlinks=False):
            dir_names[:] = sorted(name for name in dir_names if not name.startswith("."))
            current = Path(current_dir)
            for file_name in sorted(file_names):
                if file_name.startswith(".") or not file_name.endswith(DOCUMENT_SUFFIX):
                    continue
                yield (current / file_name).resolve()


def build_snapshot(settings: EngineSettings, *, agents: AgentRegistry) -> IndexSnapshot:
    root = settings.root
    if not root.is_dir():
        raise TaskRootError(root)

    documents: dict[Path, IndexedDocument] = {}
    for path in iter_task_documents(settings):
        if path in documents:
            continue
        document = read_outline(path, keywords=settings.status_keywords)
        entities = build_entities(document, settings)
        documents[path] = IndexedDocument(
            document=document,
            entities=entities,
            scopes=ScopeMap.build(document, entities),
        )

    items: dict[str, Item] = {}
    definitions: dict[str, list[Item]] = {}
    categories: dict[str, Category] = {}
    checkpoints: dict[str, Checkpoint] = {}
    for indexed in documents.values():
        for item in indexed.entities.items:
            if not item.id:
                continue
            items.setdefault(item.id, item)
            definitions.setdefault(item.id, []).append(item)
        for category in indexed.entities.categories:
            categories.setdefault(category.id, category)
        for checkpoint in indexed.entities.checkpoints:
            if checkpoint.id:
                checkpoints.setdefault(checkpoint.id, checkpoint)

    snapshot = IndexSnapshot(
        root=root,
        documents=documents,
        agents=agents,
        built_at=datetime.now(UTC),
        items=items,
        item_definitions={key: tuple(value) for key, value in definitions.items()},
        categories=categories,
        checkpoints=checkpoints,
    )
    _logger.info(
        "index_built",
        root=root.as_posix(),
        documents=len(documents),
        items=len(items),
        categories=len(categories),
        checkpoints=len(checkpoints),
        agents=len(agents),
    )
    return snapshot


__all__ = [
    "IndexSnapshot",
    "IndexedDocument",
    "TaskRootError",
    "build_snapshot",
    "iter_task_documents",
]
