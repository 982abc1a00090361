"""
backlog-engine — entity builder

File: src/backlog_engine/ingestion/entities.py

Purpose
- Classify parsed outline headings into Items, Categories and Checkpoints.

Functional requirements
- A heading whose keyword is in the status keyword set is an Item.
- A keyword-less heading whose title starts with a configured category ID is a Category.
- A keyword-less heading whose title starts with a checkpoint ID or the CHECKPOINT marker
  is a Checkpoint.
- A heading matches at most one kind; everything else is ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from backlog_engine.config.settings import EngineSettings
from backlog_engine.constants import CHECKPOINT_MARKER
from backlog_engine.domain.ids import (
    checkpoint_parent_number,
    parse_category_title,
    parse_checkpoint_title,
)
from backlog_engine.domain.models import Category, Checkpoint, Item, ItemStatus
from backlog_engine.ingestion.properties import extract_properties, parse_ref_list
from backlog_engine.outline.parser import OutlineDocument, OutlineHeading

# Whatever sits between an entity ID and its title: an optional slug, then ":".
_ID_SEPARATOR_RE: Final[re.Pattern[str]] = re.compile(r"^(?:-[a-z0-9-]+)?\s*:?\s*")

_ITEM_TITLE_PREFIX = "ITEM-"


@dataclass(frozen=True, slots=True)
class DocumentEntities:
    items: tuple[Item, ...] = ()
    categories: tuple[Category, ...] = ()
    checkpoints: tuple[Checkpoint, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.items or self.categories or self.checkpoints)


def build_entities(document: OutlineDocument, settings: EngineSettings) -> DocumentEntities:
    items: list[Item] = []
    categories: list[Category] = []
    checkpoints: list[Checkpoint] = []

    for heading in document.headings:
        if heading.keyword is not None:
            if heading.keyword in settings.status_keywords:
                items.append(_build_item(document, heading, settings))
            continue

        category = _build_category(document, heading, settings)
        if category is not None:
            categories.append(category)
            continue

        checkpoint = _build_checkpoint(document, heading, settings)
        if checkpoint is not None:
            checkpoints.append(checkpoint)

    return DocumentEntities(
        items=tuple(items),
        categories=tuple(categories),
        checkpoints=tuple(checkpoints),
    )


def _build_item(
    document: OutlineDocument, heading: OutlineHeading, settings: EngineSettings
) -> Item:
    extracted = extract_properties(heading, settings.properties)
    first_word, rest = _split_first_word(heading.title)

    if extracted.custom_id is not None:
        item_id = extracted.custom_id
    elif first_word.startswith(_ITEM_TITLE_PREFIX):
        item_id = first_word
    else:
        item_id = ""

    title = rest if item_id and first_word == item_id else heading.title
    return Item(
        id=item_id,
        file=document.path,
        line=heading.line,
        title=title,
        status=ItemStatus.from_keyword(heading.keyword),
        agent=extracted.agent,
        effort=extracted.effort,
        priority=extracted.priority,
        depends=extracted.depends,
        blocks=extracted.blocks,
        properties=extracted.properties,
        closed_time=extracted.closed_time,
        level=heading.level,
    )


def _build_category(
    document: OutlineDocument, heading: OutlineHeading, settings: EngineSettings
) -> Category | None:
    parsed = parse_category_title(heading.title, settings.category_prefixes)
    if parsed is None:
        return None
    category_id, prefix, number = parsed
    extracted = extract_properties(heading, settings.properties)
    names = settings.properties
    return Category(
        id=category_id,
        prefix=prefix,
        number=number,
        file=document.path,
        line=heading.line,
        title=_strip_id_separator(heading.title[len(category_id) :]),
        goal=extracted.properties.get(names.goal),
        depends=parse_ref_list(extracted.properties.get(names.depends)),
        properties=extracted.properties,
        level=heading.level,
    )


def _build_checkpoint(
    document: OutlineDocument, heading: OutlineHeading, settings: EngineSettings
) -> Checkpoint | None:
    title = heading.title
    first_word, rest = _split_first_word(title)
    has_marker = first_word.upper() == CHECKPOINT_MARKER
    if has_marker:
        title = rest

    title_id = parse_checkpoint_title(title)
    if title_id is None and not has_marker:
        return None
    if title_id is not None:
        title = _strip_id_separator(title[len(title_id) :])

    extracted = extract_properties(heading, settings.properties)
    checkpoint_id = extracted.custom_id or title_id or ""
    names = settings.properties
    return Checkpoint(
        id=checkpoint_id,
        file=document.path,
        line=heading.line,
        title=title,
        criteria=extracted.properties.get(names.criteria),
        verify=extracted.properties.get(names.verify),
        review_by=extracted.properties.get(names.review_by),
        parent_number=checkpoint_parent_number(checkpoint_id) if checkpoint_id else None,
        properties=extracted.properties,
        level=heading.level,
    )


def _strip_id_separator(remainder: str) -> str:
    return _ID_SEPARATOR_RE.sub("", remainder, count=1).strip()


def _split_first_word(text: str) -> tuple[str, str]:
    first, _, rest = text.strip().partition(" ")
    return first, rest.strip()


__all__ = ["DocumentEntities", "build_entities"]
