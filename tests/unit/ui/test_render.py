"""Unit tests for CLI rendering and exit-code routing."""

from __future__ import annotations

import pytest

from backlog_engine.config.loader import ConfigLoadError
from backlog_engine.domain.models import Severity, ValidationFinding
from backlog_engine.main import ExitCode, exit_code_for
from backlog_engine.ui.render import create_renderer


def _finding() -> ValidationFinding:
    return ValidationFinding(
        file="projects/core.org",
        line=12,
        rule="valid-depends",
        severity=Severity.ERROR,
        message="dependency 'ITEM-404' does not resolve to a known item",
        hint="use an existing item id",
    )


@pytest.mark.unit
def test_finding_lines_are_plain_and_hints_need_verbose(
    capsys: pytest.CaptureFixture[str],
) -> None:
    create_renderer(no_color=True).finding(_finding())
    quiet = capsys.readouterr().out

    create_renderer(no_color=True, verbose=True).finding(_finding())
    verbose = capsys.readouterr().out

    assert quiet == (
        "projects/core.org:12: [error] valid-depends: "
        "dependency 'ITEM-404' does not resolve to a known item\n"
    )
    assert verbose.endswith("    hint: use an existing item id\n")


@pytest.mark.unit
def test_table_pads_columns_and_skips_empty(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = create_renderer(no_color=True)

    renderer.table(["AGENT", "DONE"], [])
    renderer.table(["AGENT", "DONE"], [["backend", "3"], ["qa", "10"]], title="Agents:")

    assert capsys.readouterr().out.splitlines() == [
        "",
        "Agents:",
        "  AGENT    DONE",
        "  -------  ----",
        "  backend  3",
        "  qa       10",
    ]


@pytest.mark.unit
def test_exception_chain_routing() -> None:
    try:
        try:
            raise ConfigLoadError("bad env")
        except ConfigLoadError as inner:
            raise RuntimeError("wrapped") from inner
    except RuntimeError as outer:
        assert exit_code_for(outer) is ExitCode.CONFIG_ERROR

    assert exit_code_for(KeyError("x")) is ExitCode.INTERNAL_ERROR
