"""Unit tests for the outline document parser."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from backlog_engine.outline.parser import (
    DocumentReadError,
    parse_closed_timestamp,
    parse_outline,
    read_outline,
)

SAMPLE = """#+TITLE: Core work
#+BACKLINKS: ITEM-009

* PROJ-001 Core engine :core:
:PROPERTIES:
:GOAL: Ship it
:END:
** DONE ITEM-001 Parser
CLOSED: [2026-10-15 Thu 09:30]
:PROPERTIES:
:CUSTOM_ID: ITEM-001
:AGENT: backend
:EMPTY:
:END:
#+BEGIN_EXAMPLE
* TODO ITEM-999 Not a heading
#+END_EXAMPLE
** TODO ITEM-002 Broken drawer
:PROPERTIES:
:AGENT: backend
* Next section
"""


@pytest.mark.unit
def test_headings_keywords_tags_and_lines() -> None:
    document = parse_outline(SAMPLE)

    titles = [heading.title for heading in document.headings]
    assert titles == [
        "PROJ-001 Core engine",
        "ITEM-001 Parser",
        "ITEM-002 Broken drawer",
        "Next section",
    ]
    category, done, todo, last = document.headings
    assert category.level == 1 and category.keyword is None
    assert category.tags == ("core",)
    assert done.keyword == "DONE" and done.level == 2
    assert todo.keyword == "TODO"
    assert last.line == len(SAMPLE.splitlines())


@pytest.mark.unit
def test_property_drawer_and_planning_line() -> None:
    document = parse_outline(SAMPLE)
    done = document.headings[1]

    assert done.property("custom_id") == "ITEM-001"
    assert done.property("AGENT") == "backend"
    assert done.property("EMPTY") is None
    assert done.planning_line == done.line + 1
    assert done.closed == datetime(2026, 10, 15, 9, 30, tzinfo=UTC)
    assert done.drawer_closed


@pytest.mark.unit
def test_unterminated_drawer_ends_at_next_heading() -> None:
    document = parse_outline(SAMPLE)
    broken = document.headings[2]

    assert not broken.drawer_closed
    assert broken.property("AGENT") == "backend"
    assert broken.drawer_end == document.headings[3].line - 1


@pytest.mark.unit
def test_file_keywords_come_from_the_preamble() -> None:
    document = parse_outline(SAMPLE)

    assert document.keyword("title") == "Core work"
    assert document.keyword("BACKLINKS") == "ITEM-009"
    assert document.keyword("missing") is None


@pytest.mark.unit
def test_unknown_keyword_stays_in_the_title() -> None:
    document = parse_outline("* WAITING ITEM-003 Something\n", keywords={"TODO", "DONE"})

    heading = document.headings[0]
    assert heading.keyword is None
    assert heading.title == "WAITING ITEM-003 Something"


@pytest.mark.unit
def test_closed_timestamp_variants() -> None:
    assert parse_closed_timestamp("CLOSED: [2026-01-02]") == datetime(2026, 1, 2, tzinfo=UTC)
    assert parse_closed_timestamp("CLOSED: [2026-01-02 Fri 7:05]") == datetime(
        2026, 1, 2, 7, 5, tzinfo=UTC
    )
    assert parse_closed_timestamp("CLOSED: [2026-13-40]") is None
    assert parse_closed_timestamp("SCHEDULED: <2026-01-02>") is None


@pytest.mark.unit
def test_heading_at_resolves_sections() -> None:
    document = parse_outline(SAMPLE)
    done = document.headings[1]

    assert document.heading_at(done.line + 2) is done
    assert document.heading_at(1) is None


@pytest.mark.unit
def test_read_outline_wraps_io_failures(tmp_path: Path) -> None:
    missing = tmp_path / "missing.org"

    with pytest.raises(DocumentReadError) as error:
        read_outline(missing)
    assert error.value.path == missing
    assert isinstance(error.value, OSError)
