"""Unit tests for status tallies, progress, workload, velocity and burndown."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from backlog_engine.analytics import (
    Trend,
    agent_workload,
    build_dashboard,
    burndown_report,
    category_progress,
    classify_trend,
    find_blockers,
    status_tally,
    velocity,
    velocity_report,
)
from backlog_engine.config import EngineSettings
from backlog_engine.index import IndexCache

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _closed(days_ago: float) -> str:
    stamp = NOW - timedelta(days=days_ago)
    return f"CLOSED: [{stamp:%Y-%m-%d %a %H:%M}]\n"


def _item(
    keyword: str,
    item_id: str,
    *,
    level: int = 2,
    agent: str | None = None,
    effort: str | None = None,
    depends: str | None = None,
    closed_days_ago: float | None = None,
) -> str:
    lines = [f"{'*' * level} {keyword} {item_id} Work\n"]
    if closed_days_ago is not None:
        lines.append(_closed(closed_days_ago))
    lines.append(":PROPERTIES:\n")
    lines.append(f":CUSTOM_ID: {item_id}\n")
    if agent is not None:
        lines.append(f":AGENT: {agent}\n")
    if effort is not None:
        lines.append(f":EFFORT: {effort}\n")
    if depends is not None:
        lines.append(f":DEPENDS: {depends}\n")
    lines.append(":END:\n")
    return "".join(lines)


def _snapshot(root: Path, text: str):
    settings = EngineSettings.defaults(root)
    _write(root / "projects" / "core.org", text)
    return IndexCache(settings).get_or_build(), settings


@pytest.mark.unit
def test_status_tally_buckets(tmp_path: Path) -> None:
    snapshot, _settings = _snapshot(
        tmp_path,
        _item("DONE", "ITEM-001")
        + _item("DOING", "ITEM-002")
        + _item("BLOCKED", "ITEM-003")
        + _item("TODO", "ITEM-004"),
    )

    tally = status_tally(snapshot.all_items())

    assert tally.to_dict() == {
        "total_items": 4,
        "complete": 1,
        "in_progress": 1,
        "blocked": 1,
        "pending": 1,
    }


@pytest.mark.unit
def test_review_counts_as_in_progress_and_empty_tally(tmp_path: Path) -> None:
    snapshot, _settings = _snapshot(tmp_path, _item("REVIEW", "ITEM-001"))

    assert status_tally(snapshot.all_items()).in_progress == 1
    assert status_tally(()).total_items == 0


@pytest.mark.unit
def test_category_and_checkpoint_progress(tmp_path: Path) -> None:
    snapshot, _settings = _snapshot(
        tmp_path,
        "* PROJ-001 Core\n:PROPERTIES:\n:GOAL: Ship\n:END:\n"
        + "** CHK-001-01 Review\n"
        + _item("DONE", "ITEM-001", level=3)
        + _item("TODO", "ITEM-002", level=3)
        + _item("TODO", "ITEM-003")
        + "* PROJ-002 Empty\n",
    )

    core, empty = category_progress(snapshot)

    assert (core.id, core.total, core.done, core.goal) == ("PROJ-001", 3, 1, "Ship")
    assert core.progress == pytest.approx(1 / 3)
    (checkpoint,) = core.checkpoints
    assert (checkpoint.id, checkpoint.total, checkpoint.done) == ("CHK-001-01", 2, 1)
    assert checkpoint.progress == 0.5
    assert empty.total == 0
    assert empty.progress == 0.0


@pytest.mark.unit
def test_agent_workload_counts_each_agent_independently(tmp_path: Path) -> None:
    snapshot, _settings = _snapshot(
        tmp_path,
        _item("DONE", "ITEM-001", agent="backend:api")
        + _item("TODO", "ITEM-002", agent="backend")
        + _item("TODO", "ITEM-003", agent="frontend")
        + _item("TODO", "ITEM-004"),
    )

    loads = agent_workload(snapshot.all_items())

    assert list(loads) == ["backend", "frontend"]
    assert loads["backend"].to_dict() == {"assigned": 2, "done": 1}
    assert loads["frontend"].to_dict() == {"assigned": 1, "done": 0}
    loads["backend"].assigned += 5
    loads["backend"].done += 1

    assert loads["backend"].to_dict() == {"assigned": 7, "done": 2}
    assert loads["frontend"].to_dict() == {"assigned": 1, "done": 0}


@pytest.mark.unit
def test_velocity_window_and_trend(tmp_path: Path) -> None:
    snapshot, settings = _snapshot(
        tmp_path,
        _item("DONE", "ITEM-001", closed_days_ago=1)
        + _item("DONE", "ITEM-002", closed_days_ago=2)
        + _item("DONE", "ITEM-003", closed_days_ago=10)
        + _item("DONE", "ITEM-004", closed_days_ago=30)
        + _item("TODO", "ITEM-005"),
    )
    items = tuple(snapshot.all_items())

    assert velocity(items, now=NOW, window_days=7) == pytest.approx(2 / 7)

    report = velocity_report(items, now=NOW, settings=settings)
    assert (report.closed, report.earlier_closed) == (2, 1)
    assert report.trend is Trend.INCREASING
    assert report.to_dict()["window_days"] == 7


@pytest.mark.unit
@pytest.mark.parametrize(
    ("earlier", "recent", "expected"),
    [
        (0, 0, Trend.UNKNOWN),
        (0, 3, Trend.INCREASING),
        (10, 12, Trend.INCREASING),
        (10, 8, Trend.DECREASING),
        (10, 10, Trend.STABLE),
        (10, 11, Trend.STABLE),
    ],
)
def test_classify_trend(earlier: int, recent: int, expected: Trend) -> None:
    assert classify_trend(earlier, recent, increase_ratio=1.1, decrease_ratio=0.9) is expected


@pytest.mark.unit
def test_burndown_projection(tmp_path: Path) -> None:
    snapshot, _settings = _snapshot(
        tmp_path,
        _item("DONE", "ITEM-001", effort="14h", closed_days_ago=3)
        + _item("TODO", "ITEM-002", effort="2h")
        + _item("DOING", "ITEM-003", effort="30m")
        + _item("TODO", "ITEM-004"),
    )

    report = burndown_report(snapshot.all_items(), now=NOW, window_days=14)

    assert report.open_items == 3
    assert report.remaining_minutes == 150
    assert report.unestimated_items == 1
    assert report.daily_rate_minutes == 60.0
    assert report.projected_days == 2.5


@pytest.mark.unit
def test_burndown_without_recent_completions_is_unknown(tmp_path: Path) -> None:
    snapshot, _settings = _snapshot(tmp_path, _item("TODO", "ITEM-001", effort="1h"))

    report = burndown_report(snapshot.all_items(), now=NOW, window_days=14)

    assert report.projected_days is None
    assert report.to_dict()["projected_days"] is None


@pytest.mark.unit
def test_blockers_and_dashboard_payload(tmp_path: Path) -> None:
    snapshot, settings = _snapshot(
        tmp_path,
        "* PROJ-001 Core\n"
        + _item("DONE", "ITEM-001", closed_days_ago=1)
        + _item("TODO", "ITEM-002", depends="ITEM-001")
        + _item("TODO", "ITEM-003", depends="ITEM-002")
        + _item("BLOCKED", "ITEM-004"),
    )

    blockers = {blocker.item_id: blocker.blocked_by for blocker in find_blockers(snapshot)}
    assert blockers == {"ITEM-003": ("ITEM-002",), "ITEM-004": ()}

    dashboard = build_dashboard(snapshot, settings, now=NOW)
    assert set(dashboard) == {
        "schema_version",
        "metrics",
        "categories",
        "agents",
        "blockers",
        "velocity",
        "generated_at",
    }
    assert dashboard["metrics"]["total_items"] == 4
    assert dashboard["velocity"] == {"last_7_days": pytest.approx(1 / 7), "trend": "increasing"}
    assert dashboard["generated_at"] == "2026-10-18T12:00:00+00:00"


@pytest.mark.unit
def test_dashboard_velocity_is_a_weekly_rate_for_any_configured_window(
    tmp_path: Path,
) -> None:
    settings = EngineSettings.defaults(tmp_path, analytics={"velocity_window_days": 14})
    _write(
        tmp_path / "projects" / "core.org",
        _item("DONE", "ITEM-001", closed_days_ago=1)
        + _item("DONE", "ITEM-002", closed_days_ago=10),
    )
    snapshot = IndexCache(settings).get_or_build()

    dashboard = build_dashboard(snapshot, settings, now=NOW)

    assert dashboard["velocity"] == {"last_7_days": pytest.approx(1 / 7), "trend": "stable"}
    assert velocity_report(snapshot.all_items(), now=NOW, settings=settings).window_days == 14
