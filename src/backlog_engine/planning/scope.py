"""Parent category / open checkpoint resolution for document lines."""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass

from backlog_engine.config.settings import EngineSettings
from backlog_engine.domain.models import Scope
from backlog_engine.ingestion.entities import DocumentEntities, build_entities
from backlog_engine.outline.parser import OutlineDocument

_NO_SCOPE = Scope()


@dataclass(frozen=True, slots=True)
class ScopeMap:
    """Scopes keyed by heading start line, produced by one top-to-bottom pass."""

    starts: tuple[int, ...]
    scopes: tuple[Scope, ...]

    @classmethod
    def build(cls, document: OutlineDocument, entities: DocumentEntities) -> ScopeMap:
        categories = {category.line: category.id for category in entities.categories}
        checkpoints = {checkpoint.line: checkpoint for checkpoint in entities.checkpoints}

        starts: list[int] = []
        scopes: list[Scope] = []
        category_id: str | None = None
        checkpoint_id: str | None = None
        checkpoint_level: int | None = None

        for heading in document.headings:
            if checkpoint_level is not None and heading.level <= checkpoint_level:
                checkpoint_id = None
                checkpoint_level = None

            if heading.line in categories:
                category_id = categories[heading.line]
                checkpoint_id = None
                checkpoint_level = None
            elif heading.line in checkpoints:
                checkpoint = checkpoints[heading.line]
                checkpoint_id = checkpoint.id or None
                checkpoint_level = checkpoint.level

            starts.append(heading.line)
            scopes.append(Scope(category_id, checkpoint_id, checkpoint_level))

        return cls(starts=tuple(starts), scopes=tuple(scopes))

    def resolve(self, line: int) -> Scope:
        """Return the scope in effect at ``line``; lines before any heading have none."""

        position = bisect_right(self.starts, line)
        if position == 0:
            return _NO_SCOPE
        return self.scopes[position - 1]


def resolve_scope(document: OutlineDocument, line: int, settings: EngineSettings) -> Scope:
    entities = build_entities(document, settings)
    return ScopeMap.build(document, entities).resolve(line)


__all__ = ["ScopeMap", "resolve_scope"]
