"""Identifier grammars, reference parsing, and next-available ID computation."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from functools import lru_cache
from typing import Final

ITEM_ID_PREFIX: Final[str] = "ITEM"
CHECKPOINT_ID_PREFIX: Final[str] = "CHK"
QUALIFIED_REF_SEPARATOR: Final[str] = ":"
AGENT_SECTION_SEPARATOR: Final[str] = ":"

ITEM_ID_PATTERN_DESCRIPTION: Final[str] = "ITEM-001 or ITEM-001-short-slug"
CHECKPOINT_ID_PATTERN_DESCRIPTION: Final[str] = "CHK-001-01 or CHK-001-01-short-slug"
EFFORT_PATTERN_DESCRIPTION: Final[str] = "<digits>h or <digits>m (example: 2h, 30m)"

ITEM_ID_RE: Final[re.Pattern[str]] = re.compile(r"^ITEM-(\d+)(?:-[a-z0-9-]+)?$")
CHECKPOINT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^CHK-(\d{3,})-(\d{2,})(?:-[a-z0-9-]+)?$")
EFFORT_RE: Final[re.Pattern[str]] = re.compile(r"^(\d+)([hm])$")

# Recognition patterns are looser than the validation grammars: a heading that
# looks like an entity is still built so that format problems surface as findings.
_ITEM_NUMBER_RE: Final[re.Pattern[str]] = re.compile(r"^ITEM-(\d+)")
_CHECKPOINT_TITLE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<id>CHK-(?P<parent>\d+)-(?P<seq>\d+)(?:-[a-z0-9-]+)?)(?=[\s:]|$)"
)
_SLUG_STRIP_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")

_MINUTES_PER_UNIT: Final[dict[str, int]] = {"h": 60, "m": 1}


@lru_cache(maxsize=32)
def category_id_pattern(prefixes: tuple[str, ...]) -> re.Pattern[str]:
    """Return the anchored category-title pattern for a closed prefix set."""

    if not prefixes:
        raise ValueError("category prefix set must not be empty")
    alternatives = "|".join(re.escape(prefix) for prefix in sorted(prefixes))
    return re.compile(rf"^(?P<id>(?P<prefix>{alternatives})-(?P<number>\d+))(?!\d)")


def is_valid_item_id(value: str) -> bool:
    return ITEM_ID_RE.fullmatch(value) is not None


def is_valid_checkpoint_id(value: str) -> bool:
    return CHECKPOINT_ID_RE.fullmatch(value) is not None


def is_valid_category_id(value: str, prefixes: Sequence[str]) -> bool:
    match = category_id_pattern(tuple(prefixes)).match(value)
    return match is not None and match.group("id") == value


def parse_category_title(title: str, prefixes: Sequence[str]) -> tuple[str, str, int] | None:
    """Return ``(category_id, prefix, number)`` when ``title`` starts with a category ID."""

    match = category_id_pattern(tuple(prefixes)).match(title)
    if match is None:
        return None
    return match.group("id"), match.group("prefix"), int(match.group("number"))


def parse_checkpoint_title(title: str) -> str | None:
    """Return the leading checkpoint ID of a heading title, if any."""

    match = _CHECKPOINT_TITLE_RE.match(title)
    if match is None:
        return None
    return match.group("id")


def checkpoint_parent_number(checkpoint_id: str) -> int | None:
    """Return the parent category number encoded in a checkpoint ID."""

    match = _CHECKPOINT_TITLE_RE.match(checkpoint_id)
    if match is None:
        return None
    return int(match.group("parent"))


def checkpoint_sequence(checkpoint_id: str) -> int | None:
    match = _CHECKPOINT_TITLE_RE.match(checkpoint_id)
    if match is None:
        return None
    return int(match.group("seq"))


def item_number(item_id: str) -> int | None:
    """Return the numeric part of an item ID (``ITEM-042-x`` -> ``42``)."""

    match = _ITEM_NUMBER_RE.match(item_id)
    if match is None:
        return None
    return int(match.group(1))


def parse_effort_minutes(raw: str | None) -> int | None:
    """Parse ``<digits>(h|m)`` into minutes; anything else is unparseable."""

    if raw is None:
        return None
    match = EFFORT_RE.fullmatch(raw.strip())
    if match is None:
        return None
    return int(match.group(1)) * _MINUTES_PER_UNIT[match.group(2)]


def split_qualified_ref(ref: str) -> tuple[str | None, str]:
    """
    Split a dependency reference into ``(category_id, item_id)``.

    ``PROJ-001:ITEM-004`` -> ``("PROJ-001", "ITEM-004")``; a plain ``ITEM-004``
    yields ``(None, "ITEM-004")``.
    """

    head, separator, tail = ref.partition(QUALIFIED_REF_SEPARATOR)
    if not separator:
        return None, ref.strip()
    return head.strip() or None, tail.strip()


def split_agent_ref(ref: str) -> tuple[str, str | None]:
    """Split ``name`` / ``name:section`` agent references."""

    name, separator, section = ref.partition(AGENT_SECTION_SEPARATOR)
    if not separator:
        return name.strip(), None
    return name.strip(), section.strip() or None


def slugify(text: str) -> str:
    return _SLUG_STRIP_RE.sub("-", text.strip().lower()).strip("-")


def next_item_id(existing_ids: Iterable[str], *, width: int = 3) -> str:
    """Return the next free ``ITEM-<n>`` after the highest number in use."""

    numbers = (number for number in map(item_number, existing_ids) if number is not None)
    highest = max(numbers, default=0)
    return f"{ITEM_ID_PREFIX}-{highest + 1:0{width}d}"


def next_category_id(prefix: str, existing_numbers: Iterable[int], *, width: int = 3) -> str:
    """Return the next free ``<PREFIX>-<n>`` given the numbers already used by ``prefix``."""

    highest = max(existing_numbers, default=0)
    return f"{prefix}-{highest + 1:0{width}d}"


def next_checkpoint_id(
    category_number: int,
    existing_ids: Iterable[str],
    *,
    parent_width: int = 3,
    sequence_width: int = 2,
) -> str:
    """Return the next free checkpoint ID nested under category ``category_number``."""

    sequences = [
        sequence
        for checkpoint_id in existing_ids
        if checkpoint_parent_number(checkpoint_id) == category_number
        and (sequence := checkpoint_sequence(checkpoint_id)) is not None
    ]
    highest = max(sequences, default=0)
    parent = f"{category_number:0{parent_width}d}"
    return f"{CHECKPOINT_ID_PREFIX}-{parent}-{highest + 1:0{sequence_width}d}"


__all__ = [
    "AGENT_SECTION_SEPARATOR",
    "CHECKPOINT_ID_PATTERN_DESCRIPTION",
    "CHECKPOINT_ID_PREFIX",
    "CHECKPOINT_ID_RE",
    "EFFORT_PATTERN_DESCRIPTION",
    "EFFORT_RE",
    "ITEM_ID_PATTERN_DESCRIPTION",
    "ITEM_ID_PREFIX",
    "ITEM_ID_RE",
    "QUALIFIED_REF_SEPARATOR",
    "category_id_pattern",
    "checkpoint_parent_number",
    "checkpoint_sequence",
    "is_valid_category_id",
    "is_valid_checkpoint_id",
    "is_valid_item_id",
    "item_number",
    "next_category_id",
    "next_checkpoint_id",
    "next_item_id",
    "parse_category_title",
    "parse_checkpoint_title",
    "parse_effort_minutes",
    "slugify",
    "split_agent_ref",
    "split_qualified_ref",
]
