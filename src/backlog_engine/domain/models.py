"""Backlog entity models: items, categories, checkpoints, scopes and findings."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Final

from backlog_engine.constants import STATUS_KEYWORDS
from backlog_engine.domain.ids import parse_effort_minutes

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class ItemStatus(StrEnum):
    PENDING = "pending"
    DOING = "doing"
    REVIEW = "review"
    DONE = "done"
    BLOCKED = "blocked"

    @classmethod
    def from_keyword(cls, keyword: str | None) -> ItemStatus:
        """Map a heading status keyword onto a status; unknown keywords are pending."""

        if keyword is None:
            return cls.PENDING
        mapped = STATUS_KEYWORDS.get(keyword)
        if mapped is None:
            return cls.PENDING
        return cls(mapped)


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


_SEVERITY_ORDER: Final[dict[Severity, int]] = {
    Severity.ERROR: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


class PropertyMap(Mapping[str, str]):
    """Immutable mapping of a node's raw properties; keys are upper-cased."""

    __slots__ = ("_data",)

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        data: dict[str, str] = {}
        for key, value in pairs:
            normalized_key = key.strip().upper()
            normalized_value = value.strip()
            if not normalized_key or not normalized_value:
                continue
            data.setdefault(normalized_key, normalized_value)
        self._data = data

    def __getitem__(self, key: str) -> str:
        return self._data[key.upper()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.upper() in self._data

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        return self._data.get(key.upper(), default)

    def __repr__(self) -> str:
        return f"PropertyMap({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PropertyMap):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._data.items())))

    def to_dict(self) -> dict[str, str]:
        return {key: self._data[key] for key in sorted(self._data)}


@dataclass(frozen=True, slots=True)
class Item:
    id: str
    file: Path
    line: int
    title: str
    status: ItemStatus
    agent: str | None
    effort: str | None
    priority: str | None
    depends: tuple[str, ...]
    blocks: tuple[str, ...]
    properties: PropertyMap
    closed_time: datetime | None
    level: int

    @property
    def effort_minutes(self) -> int | None:
        return parse_effort_minutes(self.effort)

    @property
    def is_done(self) -> bool:
        return self.status is ItemStatus.DONE

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "file": self.file.as_posix(),
            "line": self.line,
            "title": self.title,
            "status": self.status.value,
            "agent": self.agent,
            "effort": self.effort,
            "priority": self.priority,
            "depends": list(self.depends),
            "blocks": list(self.blocks),
            "closed_time": None if self.closed_time is None else self.closed_time.isoformat(),
            "level": self.level,
        }


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    prefix: str
    number: int
    file: Path
    line: int
    title: str
    goal: str | None
    depends: tuple[str, ...]
    properties: PropertyMap
    level: int

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "number": self.number,
            "file": self.file.as_posix(),
            "line": self.line,
            "title": self.title,
            "goal": self.goal,
            "depends": list(self.depends),
            "level": self.level,
        }


@dataclass(frozen=True, slots=True)
class Checkpoint:
    id: str
    file: Path
    line: int
    title: str
    criteria: str | None
    verify: str | None
    review_by: str | None
    parent_number: int | None
    properties: PropertyMap
    level: int

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "file": self.file.as_posix(),
            "line": self.line,
            "title": self.title,
            "criteria": self.criteria,
            "verify": self.verify,
            "review_by": self.review_by,
            "parent_number": self.parent_number,
            "level": self.level,
        }


@dataclass(frozen=True, slots=True)
class Scope:
    """Enclosing category and open checkpoint for one line of a document."""

    category_id: str | None = None
    checkpoint_id: str | None = None
    checkpoint_level: int | None = None

    @property
    def has_parent(self) -> bool:
        return self.category_id is not None


@dataclass(frozen=True, slots=True)
class ValidationFinding:
    file: str
    line: int
    rule: str
    severity: Severity
    message: str
    hint: str | None = None
    context: str | None = None

    def sort_key(self) -> tuple[str, int, int, str, str]:
        return (self.file, self.line, _SEVERITY_ORDER[self.severity], self.rule, self.message)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "file": self.file,
            "line": self.line,
            "rule": self.rule,
            "severity": self.severity.value,
            "message": self.message,
            "hint": self.hint,
            "context": self.context,
        }


__all__ = [
    "Category",
    "Checkpoint",
    "Item",
    "ItemStatus",
    "JSONScalar",
    "JSONValue",
    "PropertyMap",
    "Scope",
    "Severity",
    "ValidationFinding",
]
