"""Stable constants shared across engine layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
REPORT_SCHEMA_VERSION: Final[int] = 1

# Directory contract (relative to the backlog root unless overridden by config).
AGENTS_DIR: Final[PurePosixPath] = PurePosixPath("agents")
TASK_DIRS: Final[tuple[str, ...]] = ("projects", "bugs", "improvements")
AGENT_REGISTRY_INDEX: Final[str] = "index.org"
LOGS_DIR: Final[PurePosixPath] = PurePosixPath("logs")
DOCUMENT_SUFFIX: Final[str] = ".org"

# Heading keyword -> item status value. The key set is the closed status keyword set.
STATUS_KEYWORDS: Final[dict[str, str]] = {
    "TODO": "pending",
    "PENDING": "pending",
    "DOING": "doing",
    "IN-PROGRESS": "doing",
    "REVIEW": "review",
    "DONE": "done",
    "BLOCKED": "blocked",
}

CATEGORY_PREFIXES: Final[tuple[str, ...]] = ("PROJ", "BUG", "IMP")
CHECKPOINT_MARKER: Final[str] = "CHECKPOINT"
CHECKPOINT_LEVEL: Final[int] = 2

# Property names recognised by the engine (all other properties are retained verbatim).
PROP_CUSTOM_ID: Final[str] = "CUSTOM_ID"
PROP_AGENT: Final[str] = "AGENT"
PROP_EFFORT: Final[str] = "EFFORT"
PROP_PRIORITY: Final[str] = "PRIORITY"
PROP_DEPENDS: Final[str] = "DEPENDS"
PROP_BLOCKS: Final[str] = "BLOCKS"
PROP_TEST_PLAN: Final[str] = "TEST_PLAN"
PROP_COMPONENT: Final[str] = "COMPONENT"
PROP_ARTIFACT: Final[str] = "SPEC"
PROP_BACKLINKS: Final[str] = "BACKLINKS"
PROP_GOAL: Final[str] = "GOAL"
PROP_CRITERIA: Final[str] = "CRITERIA"
PROP_VERIFY: Final[str] = "VERIFY"
PROP_REVIEW_BY: Final[str] = "REVIEW_BY"

REQUIRED_ITEM_PROPERTIES: Final[tuple[str, ...]] = (
    PROP_CUSTOM_ID,
    PROP_AGENT,
    PROP_EFFORT,
    PROP_PRIORITY,
)

# Analytics windows and trend thresholds.
VELOCITY_WINDOW_DAYS: Final[int] = 7
BURNDOWN_WINDOW_DAYS: Final[int] = 14
TREND_INCREASE_RATIO: Final[float] = 1.1
TREND_DECREASE_RATIO: Final[float] = 0.9

__all__ = [
    "AGENTS_DIR",
    "AGENT_REGISTRY_INDEX",
    "BURNDOWN_WINDOW_DAYS",
    "CATEGORY_PREFIXES",
    "CHECKPOINT_LEVEL",
    "CHECKPOINT_MARKER",
    "CONFIG_SCHEMA_VERSION",
    "DOCUMENT_SUFFIX",
    "LOGS_DIR",
    "PROP_AGENT",
    "PROP_ARTIFACT",
    "PROP_BACKLINKS",
    "PROP_BLOCKS",
    "PROP_COMPONENT",
    "PROP_CRITERIA",
    "PROP_CUSTOM_ID",
    "PROP_DEPENDS",
    "PROP_EFFORT",
    "PROP_GOAL",
    "PROP_PRIORITY",
    "PROP_REVIEW_BY",
    "PROP_TEST_PLAN",
    "PROP_VERIFY",
    "REPORT_SCHEMA_VERSION",
    "REQUIRED_ITEM_PROPERTIES",
    "STATUS_KEYWORDS",
    "TASK_DIRS",
    "TREND_DECREASE_RATIO",
    "TREND_INCREASE_RATIO",
    "VELOCITY_WINDOW_DAYS",
]
