"""Unit tests for heading classification and property extraction."""

from __future__ import annotations

from pathlib import Path

import pytest

from backlog_engine.config import EngineSettings
from backlog_engine.domain.models import ItemStatus
from backlog_engine.ingestion import build_entities, extract_properties, parse_ref_list
from backlog_engine.outline.parser import parse_outline
from backlog_engine.planning import resolve_scope

DOCUMENT = """#+TITLE: Core
* PROJ-002 Storage layer
:PROPERTIES:
:GOAL: Durable writes
:DEPENDS: PROJ-001
:END:
** TODO ITEM-010 Write-ahead log
:PROPERTIES:
:CUSTOM_ID: ITEM-010
:AGENT: backend:storage
:EFFORT: 2h
:PRIORITY: A
:DEPENDS: ITEM-004, PROJ-001:ITEM-002 ,
:END:
** IN-PROGRESS Compaction without id
** CHK-002-01 Storage review
:PROPERTIES:
:CRITERIA: fsync on commit
:REVIEW_BY: qa
:END:
** CHECKPOINT Loose checkpoint
* Notes
** WAITING ITEM-011 Unknown keyword
"""


def _entities(tmp_path: Path):
    settings = EngineSettings.defaults(tmp_path)
    document = parse_outline(DOCUMENT, path=tmp_path / "projects" / "core.org")
    return build_entities(document, settings)


@pytest.mark.unit
def test_items_are_status_headings(tmp_path: Path) -> None:
    entities = _entities(tmp_path)

    assert [item.id for item in entities.items] == ["ITEM-010", ""]
    item = entities.items[0]
    assert item.title == "Write-ahead log"
    assert item.status is ItemStatus.PENDING
    assert item.agent == "backend:storage"
    assert item.effort_minutes == 120
    assert item.depends == ("ITEM-004", "PROJ-001:ITEM-002")
    assert item.file == tmp_path / "projects" / "core.org"
    assert item.level == 2

    unnamed = entities.items[1]
    assert unnamed.status is ItemStatus.DOING
    assert unnamed.title == "Compaction without id"


@pytest.mark.unit
def test_categories_use_the_configured_prefixes(tmp_path: Path) -> None:
    entities = _entities(tmp_path)

    assert len(entities.categories) == 1
    category = entities.categories[0]
    assert (category.id, category.prefix, category.number) == ("PROJ-002", "PROJ", 2)
    assert category.title == "Storage layer"
    assert category.goal == "Durable writes"
    assert category.depends == ("PROJ-001",)


@pytest.mark.unit
def test_checkpoints_by_id_or_marker(tmp_path: Path) -> None:
    entities = _entities(tmp_path)

    by_id, by_marker = entities.checkpoints
    assert by_id.id == "CHK-002-01"
    assert by_id.parent_number == 2
    assert by_id.title == "Storage review"
    assert by_id.criteria == "fsync on commit"
    assert by_id.review_by == "qa"

    assert by_marker.id == ""
    assert by_marker.parent_number is None
    assert by_marker.title == "Loose checkpoint"


@pytest.mark.unit
def test_ids_followed_by_a_colon_or_slug_are_recognised(tmp_path: Path) -> None:
    settings = EngineSettings.defaults(tmp_path)
    document = parse_outline(
        "* PROJ-001: Editor core\n"
        "** CHK-001-01: Basic editing\n"
        "*** TODO ITEM-001 Cursor\n"
        "* PROJ-002-storage Storage layer\n"
        "** CHK-002-01-review Review\n"
    )

    entities = build_entities(document, settings)

    assert [(c.id, c.title) for c in entities.categories] == [
        ("PROJ-001", "Editor core"),
        ("PROJ-002", "Storage layer"),
    ]
    assert [(c.id, c.parent_number, c.title) for c in entities.checkpoints] == [
        ("CHK-001-01", 1, "Basic editing"),
        ("CHK-002-01-review", 2, "Review"),
    ]


@pytest.mark.unit
def test_scope_resolves_under_colon_titled_parents(tmp_path: Path) -> None:
    settings = EngineSettings.defaults(tmp_path)
    document = parse_outline(
        "* PROJ-001: Editor core\n** CHK-001-01: Basic\n*** TODO ITEM-001 Cursor\n"
    )

    scope = resolve_scope(document, 3, settings)

    assert (scope.category_id, scope.checkpoint_id) == ("PROJ-001", "CHK-001-01")


@pytest.mark.unit
def test_document_without_backlog_headings_is_empty(tmp_path: Path) -> None:
    settings = EngineSettings.defaults(tmp_path)
    document = parse_outline("* Notes\n** Ideas\n")

    assert build_entities(document, settings).is_empty


@pytest.mark.unit
def test_extract_properties_reads_configured_names(tmp_path: Path) -> None:
    settings = EngineSettings.defaults(tmp_path, properties={"depends": "NEEDS"})
    document = parse_outline(
        "* TODO ITEM-001 x\n:PROPERTIES:\n:needs: ITEM-002\n:DEPENDS: ITEM-003\n:END:\n"
    )

    extracted = extract_properties(document.headings[0], settings.properties)

    assert extracted.depends == ("ITEM-002",)
    assert extracted.properties.get("depends") == "ITEM-003"
    assert extracted.custom_id is None


@pytest.mark.unit
def test_parse_ref_list_drops_blanks() -> None:
    assert parse_ref_list(None) == ()
    assert parse_ref_list(" , ,") == ()
    assert parse_ref_list("A, B,,C ") == ("A", "B", "C")
