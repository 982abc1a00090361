"""
backlog-engine — progress, velocity and burndown analytics

File: src/backlog_engine/analytics/metrics.py

Purpose
- Derive status tallies, per-category and per-checkpoint progress, agent workloads,
  completion velocity with a trend, burndown projections and the dashboard payload.

Functional requirements
- ``in_progress`` counts doing + review; ``pending`` counts every other non-done,
  non-blocked status.
- Progress is ``done / total`` and ``0.0`` for an empty scope.
- Velocity windows are half-open on the left: ``(now - N days, now]``.
- Projections are unknown (``None``) when the completion rate is zero.

Non-functional requirements
- Pure functions over an index snapshot; the caller supplies ``now``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Final

from backlog_engine.config.settings import EngineSettings
from backlog_engine.constants import REPORT_SCHEMA_VERSION
from backlog_engine.domain.ids import split_agent_ref
from backlog_engine.domain.models import Category, Item, ItemStatus, JSONValue, Scope
from backlog_engine.index.snapshot import IndexSnapshot

# The dashboard velocity field is named for a fixed week, whatever the configured window.
DASHBOARD_VELOCITY_DAYS: Final[int] = 7


class Trend(StrEnum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class StatusTally:
    total_items: int = 0
    complete: int = 0
    in_progress: int = 0
    blocked: int = 0
    pending: int = 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "total_items": self.total_items,
            "complete": self.complete,
            "in_progress": self.in_progress,
            "blocked": self.blocked,
            "pending": self.pending,
        }


@dataclass(frozen=True, slots=True)
class CheckpointProgress:
    id: str
    title: str
    total: int
    done: int

    @property
    def progress(self) -> float:
        return _ratio(self.done, self.total)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "title": self.title,
            "total": self.total,
            "done": self.done,
            "progress": self.progress,
        }


@dataclass(frozen=True, slots=True)
class CategoryProgress:
    id: str
    title: str
    goal: str | None
    total: int
    done: int
    checkpoints: tuple[CheckpointProgress, ...] = ()

    @property
    def progress(self) -> float:
        return _ratio(self.done, self.total)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "title": self.title,
            "goal": self.goal,
            "total": self.total,
            "done": self.done,
            "progress": self.progress,
            "checkpoints": [checkpoint.to_dict() for checkpoint in self.checkpoints],
        }


@dataclass(slots=True)
class AgentLoad:
    assigned: int = 0
    done: int = 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {"assigned": self.assigned, "done": self.done}


@dataclass(frozen=True, slots=True)
class Blocker:
    item_id: str
    blocked_by: tuple[str, ...]

    def to_dict(self) -> dict[str, JSONValue]:
        return {"item_id": self.item_id, "blocked_by": list(self.blocked_by)}


@dataclass(frozen=True, slots=True)
class VelocityReport:
    window_days: int
    closed: int
    earlier_closed: int
    trend: Trend

    @property
    def per_day(self) -> float:
        return self.closed / self.window_days

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "window_days": self.window_days,
            "closed": self.closed,
            "earlier_closed": self.earlier_closed,
            "per_day": self.per_day,
            "trend": self.trend.value,
        }


@dataclass(frozen=True, slots=True)
class BurndownReport:
    window_days: int
    open_items: int
    remaining_minutes: int
    unestimated_items: int
    closed_minutes: int

    @property
    def daily_rate_minutes(self) -> float:
        return self.closed_minutes / self.window_days

    @property
    def projected_days(self) -> float | None:
        rate = self.daily_rate_minutes
        if rate <= 0:
            return None
        return self.remaining_minutes / rate

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "window_days": self.window_days,
            "open_items": self.open_items,
            "remaining_minutes": self.remaining_minutes,
            "unestimated_items": self.unestimated_items,
            "daily_rate_minutes": self.daily_rate_minutes,
            "projected_days": self.projected_days,
        }


def status_tally(items: Iterable[Item]) -> StatusTally:
    total = complete = in_progress = blocked = pending = 0
    for item in items:
        total += 1
        if item.status is ItemStatus.DONE:
            complete += 1
        elif item.status in (ItemStatus.DOING, ItemStatus.REVIEW):
            in_progress += 1
        elif item.status is ItemStatus.BLOCKED:
            blocked += 1
        else:
            pending += 1
    return StatusTally(
        total_items=total,
        complete=complete,
        in_progress=in_progress,
        blocked=blocked,
        pending=pending,
    )


def category_progress(snapshot: IndexSnapshot) -> tuple[CategoryProgress, ...]:
    scoped = [(item, snapshot.scope_of(item.file, item.line)) for item in snapshot.all_items()]

    results: list[CategoryProgress] = []
    seen: set[str] = set()
    for category in snapshot.all_categories():
        if category.id in seen:
            continue
        seen.add(category.id)
        members = [item for item, scope in scoped if scope.category_id == category.id]
        results.append(
            CategoryProgress(
                id=category.id,
                title=category.title,
                goal=category.goal,
                total=len(members),
                done=sum(1 for item in members if item.is_done),
                checkpoints=_checkpoint_progress(snapshot, category, scoped),
            )
        )
    return tuple(results)


def agent_workload(items: Iterable[Item]) -> dict[str, AgentLoad]:
    """Per base agent name (text before ``:``) assigned and done counts."""

    loads: dict[str, AgentLoad] = {}
    for item in items:
        if not item.agent:
            continue
        name, _section = split_agent_ref(item.agent)
        if not name:
            continue
        load = loads.get(name)
        if load is None:
            load = AgentLoad()
            loads[name] = load
        load.assigned += 1
        if item.is_done:
            load.done += 1
    return {name: loads[name] for name in sorted(loads)}


def count_closed(items: Iterable[Item], *, start: datetime, end: datetime) -> int:
    """Number of items closed within ``(start, end]``."""

    return sum(1 for item in items if _closed_within(item, start=start, end=end))


def velocity(items: Iterable[Item], *, now: datetime, window_days: int) -> float:
    closed = count_closed(items, start=now - timedelta(days=window_days), end=now)
    return closed / window_days


def classify_trend(
    earlier: int,
    recent: int,
    *,
    increase_ratio: float,
    decrease_ratio: float,
) -> Trend:
    if earlier == 0 and recent == 0:
        return Trend.UNKNOWN
    if recent > increase_ratio * earlier:
        return Trend.INCREASING
    if recent < decrease_ratio * earlier:
        return Trend.DECREASING
    return Trend.STABLE


def velocity_report(
    items: Iterable[Item],
    *,
    now: datetime,
    settings: EngineSettings,
    window_days: int | None = None,
) -> VelocityReport:
    days = settings.velocity_window_days if window_days is None else window_days
    materialized = tuple(items)
    window = timedelta(days=days)
    recent = count_closed(materialized, start=now - window, end=now)
    earlier = count_closed(materialized, start=now - 2 * window, end=now - window)
    return VelocityReport(
        window_days=days,
        closed=recent,
        earlier_closed=earlier,
        trend=classify_trend(
            earlier,
            recent,
            increase_ratio=settings.trend_increase_ratio,
            decrease_ratio=settings.trend_decrease_ratio,
        ),
    )


def burndown_report(
    items: Iterable[Item], *, now: datetime, window_days: int
) -> BurndownReport:
    start = now - timedelta(days=window_days)
    open_items = remaining = unestimated = closed_minutes = 0
    for item in items:
        minutes = item.effort_minutes
        if not item.is_done:
            open_items += 1
            if minutes is None:
                unestimated += 1
            else:
                remaining += minutes
        elif minutes is not None and _closed_within(item, start=start, end=now):
            closed_minutes += minutes
    return BurndownReport(
        window_days=window_days,
        open_items=open_items,
        remaining_minutes=remaining,
        unestimated_items=unestimated,
        closed_minutes=closed_minutes,
    )


def find_blockers(snapshot: IndexSnapshot) -> tuple[Blocker, ...]:
    """Non-done items that are marked blocked or wait on a non-done item."""

    graph = snapshot.dependency_graph()
    blockers: list[Blocker] = []
    for item_id in sorted(snapshot.items):
        item = snapshot.items[item_id]
        if item.is_done:
            continue
        waiting_on = tuple(
            dependency
            for dependency in graph.dependencies_of(item_id)
            if dependency != item_id and not snapshot.items[dependency].is_done
        )
        if item.status is ItemStatus.BLOCKED or waiting_on:
            blockers.append(Blocker(item_id=item_id, blocked_by=waiting_on))
    return tuple(blockers)


def build_dashboard(
    snapshot: IndexSnapshot, settings: EngineSettings, *, now: datetime
) -> dict[str, JSONValue]:
    items = tuple(snapshot.all_items())
    report = velocity_report(
        items, now=now, settings=settings, window_days=DASHBOARD_VELOCITY_DAYS
    )
    return {
        "schema_version": REPORT_SCHEMA_VERSION,
        "metrics": status_tally(items).to_dict(),
        "categories": [category.to_dict() for category in category_progress(snapshot)],
        "agents": {name: load.to_dict() for name, load in agent_workload(items).items()},
        "blockers": [blocker.to_dict() for blocker in find_blockers(snapshot)],
        "velocity": {
            "last_7_days": report.per_day,
            "trend": report.trend.value,
        },
        "generated_at": now.isoformat(timespec="seconds"),
    }


def _checkpoint_progress(
    snapshot: IndexSnapshot,
    category: Category,
    scoped: list[tuple[Item, Scope]],
) -> tuple[CheckpointProgress, ...]:
    results: list[CheckpointProgress] = []
    seen: set[str] = set()
    for checkpoint in snapshot.all_checkpoints():
        if not checkpoint.id or checkpoint.id in seen:
            continue
        if snapshot.scope_of(checkpoint.file, checkpoint.line).category_id != category.id:
            continue
        seen.add(checkpoint.id)
        members = [
            item
            for item, scope in scoped
            if scope.checkpoint_id == checkpoint.id
            and item.level > checkpoint.level
        ]
        results.append(
            CheckpointProgress(
                id=checkpoint.id,
                title=checkpoint.title,
                total=len(members),
                done=sum(1 for item in members if item.is_done),
            )
        )
    return tuple(results)


def _closed_within(item: Item, *, start: datetime, end: datetime) -> bool:
    if not item.is_done or item.closed_time is None:
        return False
    return start < item.closed_time <= end


def _ratio(done: int, total: int) -> float:
    if total == 0:
        return 0.0
    return done / total


__all__ = [
    "AgentLoad",
    "Blocker",
    "BurndownReport",
    "CategoryProgress",
    "CheckpointProgress",
    "DASHBOARD_VELOCITY_DAYS",
    "StatusTally",
    "Trend",
    "VelocityReport",
    "agent_workload",
    "build_dashboard",
    "burndown_report",
    "category_progress",
    "classify_trend",
    "count_closed",
    "find_blockers",
    "status_tally",
    "velocity",
    "velocity_report",
]
