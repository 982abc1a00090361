"""Progress, workload, velocity and burndown analytics."""

from backlog_engine.analytics.metrics import (
    AgentLoad,
    Blocker,
    BurndownReport,
    CategoryProgress,
    CheckpointProgress,
    StatusTally,
    Trend,
    VelocityReport,
    agent_workload,
    build_dashboard,
    burndown_report,
    category_progress,
    classify_trend,
    count_closed,
    find_blockers,
    status_tally,
    velocity,
    velocity_report,
)

__all__ = [
    "AgentLoad",
    "Blocker",
    "BurndownReport",
    "CategoryProgress",
    "CheckpointProgress",
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
