"""
backlog-engine — CLI smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Exercise the ``backlog`` command router end to end against a small on-disk backlog.
- Verify exit codes, machine-readable payloads, and the ``python -m backlog_engine``
  module entrypoint.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml

from backlog_engine.main import ExitCode, cli_entrypoint
from backlog_engine.ui.cli import run_cli

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


def _write(path: Path, contents: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    return path


def _seed_backlog(root: Path) -> None:
    _write(root / "agents" / "backend.org", "* API\n")
    _write(root / "docs" / "design.org", "#+TITLE: Design\n")
    _write(
        root / "projects" / "core.org",
        """#+TITLE: Core
* PROJ-001 Core engine
** CHK-001-01 Parser review
:PROPERTIES:
:CRITERIA: parser handles drawers
:VERIFY: unit tests
:END:
*** DONE ITEM-001 Parser
CLOSED: [2026-10-16 Fri 10:00]
:PROPERTIES:
:CUSTOM_ID: ITEM-001
:AGENT: backend
:EFFORT: 2h
:PRIORITY: A
:TEST_PLAN: unit tests
:COMPONENT: outline
:SPEC: [[file:../docs/design.org]]
:END:
*** TODO ITEM-002 Index
:PROPERTIES:
:CUSTOM_ID: ITEM-002
:AGENT: backend:api
:EFFORT: 1h
:PRIORITY: B
:TEST_PLAN: unit tests
:COMPONENT: index
:DEPENDS: ITEM-001
:END:
""",
    )


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    captured = capsys.readouterr()
    return json.loads(captured.out)


def _run_module(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env["NO_COLOR"] = "1"
    return subprocess.run(
        [sys.executable, "-m", "backlog_engine", *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


@pytest.mark.integration
def test_validate_all_json_reports_a_clean_backlog(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed_backlog(tmp_path)

    exit_code = run_cli(["validate-all", "--root", str(tmp_path), "--json"])

    payload = _json_out(capsys)
    assert exit_code == ExitCode.SUCCESS
    assert payload["command"] == "validate-all"
    assert payload["valid"] is True
    assert payload["errors"] == []
    assert payload["files"] == ["projects/core.org"]
    assert payload["metrics"] == {
        "total_items": 2,
        "complete": 1,
        "in_progress": 0,
        "blocked": 0,
        "pending": 1,
    }


@pytest.mark.integration
def test_validate_single_file_fails_on_errors(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed_backlog(tmp_path)
    broken = _write(tmp_path / "bugs" / "crash.org", "* TODO ITEM-003 Crash\n")

    exit_code = run_cli(["validate", str(broken), "--root", str(tmp_path), "--verbose"])

    out = capsys.readouterr().out
    assert exit_code == ExitCode.VALIDATION_FAILED
    assert "bugs/crash.org:1: [error] required-properties" in out
    assert "invalid:" in out


@pytest.mark.integration
def test_dashboard_and_next_id_payloads(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed_backlog(tmp_path)

    assert run_cli(["dashboard", "--root", str(tmp_path), "--json"]) == ExitCode.SUCCESS
    dashboard = _json_out(capsys)
    assert dashboard["command"] == "dashboard"
    (category,) = dashboard["categories"]
    assert category["id"] == "PROJ-001"
    assert category["checkpoints"][0]["progress"] == 0.5
    assert dashboard["agents"] == {"backend": {"assigned": 2, "done": 1}}

    assert run_cli(["next-id", "--item", "--root", str(tmp_path), "--json"]) == 0
    assert _json_out(capsys)["id"] == "ITEM-003"

    assert run_cli(["next-id", "--checkpoint", "PROJ-001", "--root", str(tmp_path)]) == 0
    assert capsys.readouterr().out.strip() == "CHK-001-02"

    exit_code = run_cli(["next-id", "--prefix", "EPIC", "--root", str(tmp_path)])
    assert exit_code == ExitCode.CONFIG_ERROR
    assert "unknown category prefix" in capsys.readouterr().err


@pytest.mark.integration
def test_sync_backlinks_then_audit_links(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed_backlog(tmp_path)

    assert run_cli(["sync-backlinks", "--root", str(tmp_path), "--json"]) == 0
    payload = _json_out(capsys)
    assert payload["patched_files"] == ["docs/design.org"]
    design = (tmp_path / "docs" / "design.org").read_text(encoding="utf-8")
    assert "#+BACKLINKS: ITEM-001" in design

    assert run_cli(["audit-links", "--root", str(tmp_path), "--json"]) == 0
    assert _json_out(capsys)["ok"] is True


@pytest.mark.integration
def test_config_yaml_reflects_profile_and_file(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _seed_backlog(tmp_path)
    _write(tmp_path / "backlog.toml", "[analytics]\nvelocity_window_days = 5\n")

    exit_code = run_cli(
        ["config", "--root", str(tmp_path), "--profile", "strict", "--format", "yaml"]
    )

    document = yaml.safe_load(capsys.readouterr().out)
    assert exit_code == ExitCode.SUCCESS
    assert document["active_profile"] == "strict"
    assert document["config"]["analytics"]["velocity_window_days"] == 5
    assert document["config"]["validation"]["fail_on_warning"] is True


@pytest.mark.integration
def test_config_errors_map_to_exit_code_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write(tmp_path / "backlog.toml", "[analytics]\nvelocity_window_days = 0\n")

    assert run_cli(["validate-all", "--root", str(tmp_path)]) == ExitCode.CONFIG_ERROR
    assert "analytics.velocity_window_days" in capsys.readouterr().err

    missing = tmp_path / "absent"
    assert cli_entrypoint(["validate-all", "--root", str(missing)]) == ExitCode.CONFIG_ERROR


@pytest.mark.integration
def test_module_entrypoint_runs_in_a_subprocess(tmp_path: Path) -> None:
    _seed_backlog(tmp_path)

    completed = _run_module(tmp_path, "velocity", "--days", "7", "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["command"] == "velocity"
    assert payload["window_days"] == 7

    usage = _run_module(tmp_path, "velocity", "--days", "0")
    assert usage.returncode == ExitCode.CONFIG_ERROR
