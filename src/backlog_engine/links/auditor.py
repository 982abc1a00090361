"""Broken file-link detection across every outline document under the backlog root."""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import structlog

from backlog_engine.config.settings import EngineSettings
from backlog_engine.constants import DOCUMENT_SUFFIX
from backlog_engine.domain.models import JSONValue
from backlog_engine.index.snapshot import TaskRootError
from backlog_engine.links.syntax import iter_file_links
from backlog_engine.outline.parser import DocumentReadError, parse_outline
from backlog_engine.utils.fs import display_path

_logger = structlog.get_logger(__name__)


class BrokenLinkReason(StrEnum):
    MISSING_FILE = "missing-file"
    MISSING_TARGET = "missing-target"


@dataclass(frozen=True, slots=True)
class BrokenLink:
    file: str
    line: int
    target: str
    resolved: str
    reason: BrokenLinkReason = BrokenLinkReason.MISSING_FILE

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "file": self.file,
            "line": self.line,
            "target": self.target,
            "resolved": self.resolved,
            "reason": self.reason.value,
        }


@dataclass(frozen=True, slots=True)
class LinkAuditResult:
    broken: tuple[BrokenLink, ...]
    scanned_files: int
    checked_links: int

    @property
    def ok(self) -> bool:
        return not self.broken

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "ok": self.ok,
            "scanned_files": self.scanned_files,
            "checked_links": self.checked_links,
            "broken": [link.to_dict() for link in self.broken],
        }


def iter_outline_files(root: Path) -> Iterator[Path]:
    """Yield every outline document below ``root`` (hidden directories skipped)."""

    for current_dir, dir_names, file_names in os.walk(root, followlinks=False):
        dir_names[:] = sorted(name for name in dir_names if not name.startswith("."))
        current = Path(current_dir)
        for file_name in sorted(file_names):
            if file_name.endswith(DOCUMENT_SUFFIX) and not file_name.startswith("."):
                yield current / file_name


def audit_links(settings: EngineSettings) -> LinkAuditResult:
    root = settings.root
    if not root.is_dir():
        raise TaskRootError(root)
    broken: list[BrokenLink] = []
    anchors: dict[Path, frozenset[str]] = {}
    scanned = checked = 0

    for path in iter_outline_files(root):
        scanned += 1
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadError(path, str(exc)) from exc

        for line_number, line in enumerate(text.splitlines(), start=1):
            for link in iter_file_links(line):
                checked += 1
                resolved = link.resolve(path)
                reason: BrokenLinkReason | None = None
                if not resolved.exists():
                    reason = BrokenLinkReason.MISSING_FILE
                elif link.target is not None and resolved.suffix == DOCUMENT_SUFFIX:
                    if resolved not in anchors:
                        anchors[resolved] = _anchors(resolved, settings)
                    if link.target not in anchors[resolved]:
                        reason = BrokenLinkReason.MISSING_TARGET
                if reason is None:
                    continue
                broken.append(
                    BrokenLink(
                        file=display_path(path, root),
                        line=line_number,
                        target=link.raw_target,
                        resolved=display_path(resolved, root),
                        reason=reason,
                    )
                )

    _logger.info("link_audit_finished", files=scanned, links=checked, broken=len(broken))
    return LinkAuditResult(broken=tuple(broken), scanned_files=scanned, checked_links=checked)


def _anchors(path: Path, settings: EngineSettings) -> frozenset[str]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(path, str(exc)) from exc
    document = parse_outline(text, path=path, keywords=settings.status_keywords)
    key = settings.properties.custom_id
    anchors: set[str] = set()
    for heading in document.headings:
        custom_id = heading.property(key)
        if custom_id is not None:
            anchors.add(custom_id)
        title_id, _, _rest = heading.title.partition(" ")
        if title_id.rstrip(":"):
            anchors.add(title_id.rstrip(":"))
    return frozenset(anchors)


__all__ = [
    "BrokenLink",
    "BrokenLinkReason",
    "LinkAuditResult",
    "audit_links",
    "iter_outline_files",
]
