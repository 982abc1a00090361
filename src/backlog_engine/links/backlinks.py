"""
backlog-engine — backlink synchronizer

File: src/backlog_engine/links/backlinks.py

Purpose
- For every Item whose artifact property links to a document, record the item ID as a
  back-reference in the linked document.

Functional requirements
- ``[[file:PATH::#TARGET]]`` appends to the back-reference property of the heading whose
  CUSTOM_ID (or leading title ID) is TARGET, creating the property drawer when missing.
- ``[[file:PATH]]`` appends to the file-level ``#+BACKLINKS:`` keyword line.
- Idempotent: an ID already present is never appended again.
- Each target file is patched with one read-modify-write through an atomic replace.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import structlog

from backlog_engine.config.settings import EngineSettings
from backlog_engine.domain.models import Item, JSONValue
from backlog_engine.index.snapshot import IndexSnapshot
from backlog_engine.ingestion.properties import parse_ref_list
from backlog_engine.links.syntax import FileLink, iter_file_links
from backlog_engine.outline.parser import DocumentReadError, OutlineHeading, parse_outline
from backlog_engine.utils.fs import atomic_write, display_path

_logger = structlog.get_logger(__name__)


class UnresolvedReason(StrEnum):
    MISSING_FILE = "missing-file"
    MISSING_TARGET = "missing-target"


@dataclass(frozen=True, slots=True)
class BacklinkUpdate:
    item_id: str
    target_file: str
    target_id: str | None
    changed: bool

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "item_id": self.item_id,
            "target_file": self.target_file,
            "target_id": self.target_id,
            "changed": self.changed,
        }


@dataclass(frozen=True, slots=True)
class UnresolvedBacklink:
    item_id: str
    file: str
    line: int
    target: str
    reason: UnresolvedReason

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "item_id": self.item_id,
            "file": self.file,
            "line": self.line,
            "target": self.target,
            "reason": self.reason.value,
        }


@dataclass(frozen=True, slots=True)
class BacklinkSyncResult:
    updates: tuple[BacklinkUpdate, ...]
    unresolved: tuple[UnresolvedBacklink, ...]
    patched_files: tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.patched_files)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "changed": self.changed,
            "patched_files": list(self.patched_files),
            "updates": [update.to_dict() for update in self.updates],
            "unresolved": [entry.to_dict() for entry in self.unresolved],
        }


@dataclass(frozen=True, slots=True)
class _Request:
    item: Item
    link: FileLink


def sync_backlinks(snapshot: IndexSnapshot, settings: EngineSettings) -> BacklinkSyncResult:
    requests: dict[Path, list[_Request]] = defaultdict(list)
    unresolved: list[UnresolvedBacklink] = []
    artifact = settings.properties.artifact

    for item in snapshot.all_items():
        raw = item.properties.get(artifact)
        if not item.id or raw is None:
            continue
        for link in iter_file_links(raw):
            target_path = link.resolve(item.file)
            if not target_path.is_file():
                unresolved.append(
                    _unresolved(item, link, UnresolvedReason.MISSING_FILE, settings)
                )
                continue
            requests[target_path.resolve()].append(_Request(item=item, link=link))

    updates: list[BacklinkUpdate] = []
    patched: list[str] = []
    for target_path in sorted(requests):
        file_updates, file_unresolved, changed = _patch_file(
            target_path, requests[target_path], settings
        )
        updates.extend(file_updates)
        unresolved.extend(file_unresolved)
        if changed:
            patched.append(display_path(target_path, settings.root))

    return BacklinkSyncResult(
        updates=tuple(updates),
        unresolved=tuple(unresolved),
        patched_files=tuple(patched),
    )


def _patch_file(
    path: Path, requests: list[_Request], settings: EngineSettings
) -> tuple[list[BacklinkUpdate], list[UnresolvedBacklink], bool]:
    try:
        original = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(path, str(exc)) from exc

    text = original
    display = display_path(path, settings.root)
    updates: list[BacklinkUpdate] = []
    unresolved: list[UnresolvedBacklink] = []

    for request in requests:
        item_id = request.item.id
        target_id = request.link.target
        if target_id is None:
            text, changed = _append_file_keyword(text, item_id, settings)
        else:
            patched = _append_heading_property(text, target_id, item_id, settings)
            if patched is None:
                reason = UnresolvedReason.MISSING_TARGET
                unresolved.append(_unresolved(request.item, request.link, reason, settings))
                continue
            text, changed = patched
        updates.append(
            BacklinkUpdate(
                item_id=item_id, target_file=display, target_id=target_id, changed=changed
            )
        )
        if changed:
            _logger.info(
                "backlink_appended", item_id=item_id, target_file=display, target_id=target_id
            )

    if text == original:
        return updates, unresolved, False
    atomic_write(path, text)
    return updates, unresolved, True


def _append_heading_property(
    text: str, target_id: str, item_id: str, settings: EngineSettings
) -> tuple[str, bool] | None:
    document = parse_outline(text, keywords=settings.status_keywords)
    heading = _find_heading(document.headings, target_id, settings.properties.custom_id)
    if heading is None:
        return None

    lines = list(document.lines)
    name = settings.properties.backlinks
    for prop in heading.properties:
        if prop.key != name:
            continue
        existing = parse_ref_list(prop.value)
        if item_id in existing:
            return text, False
        indent = _indent_of(lines[prop.line - 1])
        lines[prop.line - 1] = f"{indent}:{name}: {', '.join((*existing, item_id))}"
        return _join_lines(lines, text), True

    if heading.drawer_start is not None and heading.drawer_end is not None:
        indent = _indent_of(lines[heading.drawer_start - 1])
        insert_at = heading.drawer_end - 1 if heading.drawer_closed else heading.drawer_end
        lines.insert(insert_at, f"{indent}:{name}: {item_id}")
        return _join_lines(lines, text), True

    insert_at = heading.planning_line if heading.planning_line is not None else heading.line
    lines[insert_at:insert_at] = [":PROPERTIES:", f":{name}: {item_id}", ":END:"]
    return _join_lines(lines, text), True


def _append_file_keyword(text: str, item_id: str, settings: EngineSettings) -> tuple[str, bool]:
    document = parse_outline(text, keywords=settings.status_keywords)
    lines = list(document.lines)
    name = settings.properties.backlinks

    for keyword in document.keywords:
        if keyword.key != name:
            continue
        existing = parse_ref_list(keyword.value)
        if item_id in existing:
            return text, False
        lines[keyword.line - 1] = f"#+{name}: {', '.join((*existing, item_id))}"
        return _join_lines(lines, text), True

    insert_at = document.keywords[-1].line if document.keywords else 0
    lines.insert(insert_at, f"#+{name}: {item_id}")
    return _join_lines(lines, text), True


def _find_heading(
    headings: tuple[OutlineHeading, ...], target_id: str, custom_id_key: str
) -> OutlineHeading | None:
    """Match on ``CUSTOM_ID`` first, then on a title that starts with the target ID."""

    for heading in headings:
        if heading.property(custom_id_key) == target_id:
            return heading
    for heading in headings:
        first_word, _, _rest = heading.title.partition(" ")
        if first_word.rstrip(":") == target_id:
            return heading
    return None


def _unresolved(
    item: Item, link: FileLink, reason: UnresolvedReason, settings: EngineSettings
) -> UnresolvedBacklink:
    return UnresolvedBacklink(
        item_id=item.id,
        file=display_path(item.file, settings.root),
        line=item.line,
        target=link.raw_target,
        reason=reason,
    )


def _indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _join_lines(lines: list[str], original: str) -> str:
    joined = "\n".join(lines)
    if original.endswith(("\n", "\r")) or not original:
        joined += "\n"
    return joined


__all__ = [
    "BacklinkSyncResult",
    "BacklinkUpdate",
    "UnresolvedBacklink",
    "UnresolvedReason",
    "sync_backlinks",
]
