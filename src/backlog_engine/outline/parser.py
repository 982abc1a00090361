"""
backlog-engine — outline document parser

File: src/backlog_engine/outline/parser.py

Purpose
- Parse the outline subset the engine depends on: ``*`` headings with status keywords
  and tags, ``CLOSED:`` planning stamps, ``:PROPERTIES:`` drawers, and file-level
  ``#+KEY:`` keywords.

Functional requirements
- Headings inside ``#+BEGIN_<X>`` / ``#+END_<X>`` blocks are example text, not headings.
- A malformed drawer (no ``:END:``) never aborts parsing: it ends at the next heading
  and the heading is marked ``drawer_closed=False``.
- Every heading keeps its 1-based line and depth for error reporting and scope resolution.

Non-functional requirements
- Pure and deterministic for the same text; no I/O outside ``read_outline``.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from backlog_engine.constants import STATUS_KEYWORDS

_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^(?P<stars>\*+)[ \t]+(?P<text>.*?)\s*$")
_TAGS_RE: Final[re.Pattern[str]] = re.compile(r"(?:^|\s+)(?P<tags>:(?:[\w@#%]+:)+)$")
_BLOCK_BEGIN_RE: Final[re.Pattern[str]] = re.compile(r"^\s*#\+BEGIN_(?P<name>\w+)", re.IGNORECASE)
_FILE_KEYWORD_RE: Final[re.Pattern[str]] = re.compile(
    r"^#\+(?P<key>[A-Za-z_][\w-]*):\s*(?P<value>.*?)\s*$"
)
_PLANNING_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(?:CLOSED|SCHEDULED|DEADLINE):")
_CLOSED_RE: Final[re.Pattern[str]] = re.compile(
    r"CLOSED:\s*\[(?P<date>\d{4}-\d{2}-\d{2})(?:\s+[A-Za-z.]+)?"
    r"(?:\s+(?P<time>\d{1,2}:\d{2}))?[^\]]*\]"
)
_DRAWER_START: Final[str] = ":PROPERTIES:"
_DRAWER_END: Final[str] = ":END:"
_PROPERTY_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*:(?P<key>[^:\s]+):(?:\s+(?P<value>.*?))?\s*$"
)


class DocumentReadError(OSError):
    """Raised when an outline document cannot be read from disk."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"unable to read outline document {path}: {reason}")


@dataclass(frozen=True, slots=True)
class PropertyLine:
    """One ``:KEY: value`` pair (or ``#+KEY: value`` keyword) with its source line."""

    key: str
    value: str
    line: int


@dataclass(frozen=True, slots=True)
class OutlineHeading:
    level: int
    keyword: str | None
    title: str
    tags: tuple[str, ...]
    line: int
    end_line: int
    properties: tuple[PropertyLine, ...]
    drawer_start: int | None
    drawer_end: int | None
    drawer_closed: bool
    closed: datetime | None
    planning_line: int | None

    def property(self, key: str) -> str | None:
        """Return the first non-empty value for ``key`` (case-insensitive)."""

        wanted = key.upper()
        for item in self.properties:
            if item.key == wanted:
                return item.value
        return None


@dataclass(frozen=True, slots=True)
class OutlineDocument:
    path: Path
    lines: tuple[str, ...]
    headings: tuple[OutlineHeading, ...]
    keywords: tuple[PropertyLine, ...]

    def keyword(self, key: str) -> str | None:
        wanted = key.upper()
        for item in self.keywords:
            if item.key == wanted:
                return item.value
        return None

    def heading_at(self, line: int) -> OutlineHeading | None:
        """Return the heading whose section contains ``line``."""

        for heading in self.headings:
            if heading.line <= line <= heading.end_line:
                return heading
        return None


@dataclass(slots=True)
class _Section:
    level: int
    text: str
    line_index: int
    body_start: int
    body_end: int


def read_outline(path: Path, *, keywords: Collection[str] | None = None) -> OutlineDocument:
    """Read and parse one outline document from disk."""

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(path, str(exc)) from exc
    return parse_outline(text, path=path, keywords=keywords)


def parse_outline(
    text: str,
    *,
    path: Path | None = None,
    keywords: Collection[str] | None = None,
) -> OutlineDocument:
    """Parse ``text`` into an :class:`OutlineDocument`."""

    known_keywords = frozenset(STATUS_KEYWORDS if keywords is None else keywords)
    lines = tuple(text.splitlines())
    sections, first_heading_index = _split_sections(lines)

    headings = tuple(_build_heading(lines, section, known_keywords) for section in sections)
    file_keywords = _file_keywords(lines[:first_heading_index])
    return OutlineDocument(
        path=path if path is not None else Path("<memory>"),
        lines=lines,
        headings=headings,
        keywords=file_keywords,
    )


def parse_closed_timestamp(raw: str) -> datetime | None:
    """Parse a planning line's ``CLOSED: [...]`` stamp as UTC; invalid dates yield ``None``."""

    match = _CLOSED_RE.search(raw)
    if match is None:
        return None
    stamp = match.group("date")
    time_part = match.group("time")
    try:
        if time_part is None:
            parsed = datetime.strptime(stamp, "%Y-%m-%d")
        else:
            parsed = datetime.strptime(f"{stamp} {time_part}", "%Y-%m-%d %H:%M")
    except ValueError:
        return None
    return parsed.replace(tzinfo=UTC)


def _split_sections(lines: Sequence[str]) -> tuple[list[_Section], int]:
    sections: list[_Section] = []
    open_block: str | None = None
    first_heading_index = len(lines)

    for index, line in enumerate(lines):
        if open_block is not None:
            if line.strip().upper().startswith(f"#+END_{open_block}"):
                open_block = None
            continue

        block = _BLOCK_BEGIN_RE.match(line)
        if block is not None:
            open_block = block.group("name").upper()
            continue

        heading = _HEADING_RE.match(line)
        if heading is None:
            continue

        if sections:
            sections[-1].body_end = index
        else:
            first_heading_index = index
        sections.append(
            _Section(
                level=len(heading.group("stars")),
                text=heading.group("text"),
                line_index=index,
                body_start=index + 1,
                body_end=len(lines),
            )
        )

    return sections, first_heading_index


def _build_heading(
    lines: Sequence[str], section: _Section, known_keywords: frozenset[str]
) -> OutlineHeading:
    keyword, title, tags = _split_heading_text(section.text, known_keywords)

    cursor = section.body_start
    closed: datetime | None = None
    planning_line: int | None = None
    if cursor < section.body_end and _PLANNING_RE.match(lines[cursor]):
        planning_line = cursor + 1
        closed = parse_closed_timestamp(lines[cursor])
        cursor += 1

    while cursor < section.body_end and not lines[cursor].strip():
        cursor += 1

    properties: list[PropertyLine] = []
    drawer_start: int | None = None
    drawer_end: int | None = None
    drawer_closed = False
    if cursor < section.body_end and lines[cursor].strip().upper() == _DRAWER_START:
        drawer_start = cursor + 1
        cursor += 1
        while cursor < section.body_end:
            raw = lines[cursor]
            if raw.strip().upper() == _DRAWER_END:
                drawer_end = cursor + 1
                drawer_closed = True
                break
            parsed = _PROPERTY_RE.match(raw)
            if parsed is not None and parsed.group("value"):
                properties.append(
                    PropertyLine(
                        key=parsed.group("key").upper(),
                        value=parsed.group("value"),
                        line=cursor + 1,
                    )
                )
            cursor += 1
        if not drawer_closed:
            drawer_end = section.body_end

    return OutlineHeading(
        level=section.level,
        keyword=keyword,
        title=title,
        tags=tags,
        line=section.line_index + 1,
        end_line=section.body_end,
        properties=tuple(properties),
        drawer_start=drawer_start,
        drawer_end=drawer_end,
        drawer_closed=drawer_closed,
        closed=closed,
        planning_line=planning_line,
    )


def _split_heading_text(
    text: str, known_keywords: frozenset[str]
) -> tuple[str | None, str, tuple[str, ...]]:
    tags: tuple[str, ...] = ()
    tag_match = _TAGS_RE.search(text)
    if tag_match is not None:
        tags = tuple(tag for tag in tag_match.group("tags").split(":") if tag)
        text = text[: tag_match.start()].rstrip()

    first, _, rest = text.partition(" ")
    if first in known_keywords:
        return first, rest.strip(), tags
    return None, text.strip(), tags


def _file_keywords(preamble: Sequence[str]) -> tuple[PropertyLine, ...]:
    keywords: list[PropertyLine] = []
    for index, line in enumerate(preamble):
        match = _FILE_KEYWORD_RE.match(line)
        if match is None:
            continue
        key = match.group("key").upper()
        if key.startswith(("BEGIN_", "END_")):
            continue
        keywords.append(PropertyLine(key=key, value=match.group("value"), line=index + 1))
    return tuple(keywords)


__all__ = [
    "DocumentReadError",
    "OutlineDocument",
    "OutlineHeading",
    "PropertyLine",
    "parse_closed_timestamp",
    "parse_outline",
    "read_outline",
]
