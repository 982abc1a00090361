"""
backlog-engine — session facade

File: src/backlog_engine/session.py

Purpose
- Own one run's settings and index cache and expose every engine operation
  (validation, analytics, link maintenance, ID allocation) over a single snapshot.

Functional requirements
- The index is built lazily on the first operation and reused until ``clear_caches``.
- ``sync_backlinks`` invalidates the cache whenever it patched a file, so later
  operations in the same session observe the new document contents.
- ID allocation never reuses a number already present anywhere in the index.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from backlog_engine.analytics import (
    Blocker,
    BurndownReport,
    VelocityReport,
    build_dashboard,
    burndown_report,
    find_blockers,
    velocity_report,
)
from backlog_engine.config.settings import EngineSettings
from backlog_engine.domain.ids import (
    next_category_id,
    next_checkpoint_id,
    next_item_id,
    parse_category_title,
)
from backlog_engine.domain.models import JSONValue
from backlog_engine.index.cache import IndexCache
from backlog_engine.index.snapshot import IndexSnapshot
from backlog_engine.links.auditor import LinkAuditResult, audit_links
from backlog_engine.links.backlinks import BacklinkSyncResult, sync_backlinks
from backlog_engine.validation.engine import ValidationReport, validate_all, validate_file

_logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class BacklogSession:
    """Entry point for engine operations against one backlog root."""

    def __init__(self, settings: EngineSettings, *, clock: Clock | None = None) -> None:
        self.settings = settings
        self._clock = clock or _utc_now
        self._cache = IndexCache(settings)

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], *, clock: Clock | None = None
    ) -> BacklogSession:
        return cls(EngineSettings.from_config(config), clock=clock)

    @classmethod
    def for_root(cls, root: Path, *, clock: Clock | None = None) -> BacklogSession:
        return cls(EngineSettings.defaults(root), clock=clock)

    @property
    def cache(self) -> IndexCache:
        return self._cache

    def snapshot(self) -> IndexSnapshot:
        return self._cache.get_or_build()

    def now(self) -> datetime:
        return self._clock()

    # Validation

    def validate_file(self, path: Path) -> ValidationReport:
        return validate_file(path, self.snapshot(), self.settings)

    def validate_all(self) -> ValidationReport:
        return validate_all(self.snapshot(), self.settings)

    # Analytics

    def generate_dashboard(self) -> dict[str, JSONValue]:
        return build_dashboard(self.snapshot(), self.settings, now=self.now())

    def list_blocked(self) -> tuple[Blocker, ...]:
        return find_blockers(self.snapshot())

    def velocity_report(self, *, window_days: int | None = None) -> VelocityReport:
        items = self.snapshot().all_items()
        return velocity_report(
            items, now=self.now(), settings=self.settings, window_days=window_days
        )

    def burndown_report(self, *, window_days: int | None = None) -> BurndownReport:
        days = self.settings.burndown_window_days if window_days is None else window_days
        return burndown_report(self.snapshot().all_items(), now=self.now(), window_days=days)

    # Links

    def audit_links(self) -> LinkAuditResult:
        return audit_links(self.settings)

    def sync_backlinks(self) -> BacklinkSyncResult:
        result = sync_backlinks(self.snapshot(), self.settings)
        if result.changed:
            self.clear_caches()
        return result

    # Identifier allocation

    def next_category_id(self, prefix: str) -> str:
        if prefix not in self.settings.category_prefixes:
            known = ", ".join(self.settings.category_prefixes)
            raise ValueError(f"unknown category prefix {prefix!r}; expected one of: {known}")
        numbers = self.snapshot().category_numbers(prefix)
        return next_category_id(prefix, numbers, width=self.settings.category_number_width)

    def next_item_id(self) -> str:
        existing = self.snapshot().item_definitions.keys()
        return next_item_id(existing, width=self.settings.item_number_width)

    def next_checkpoint_id(self, category_id: str) -> str:
        parsed = parse_category_title(category_id, self.settings.category_prefixes)
        if parsed is None or parsed[0] != category_id:
            raise ValueError(f"{category_id!r} is not a category identifier")
        _, _, number = parsed
        existing = (checkpoint.id for checkpoint in self.snapshot().all_checkpoints())
        return next_checkpoint_id(
            number, existing, parent_width=self.settings.category_number_width
        )

    # Cache lifecycle

    def clear_caches(self) -> None:
        self._cache.invalidate()
        _logger.debug("session_caches_cleared", root=self.settings.root.as_posix())


__all__ = ["BacklogSession", "Clock"]
