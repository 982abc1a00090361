"""Typed engine settings derived from a validated config mapping."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from backlog_engine.config.schema import default_config, merge_config
from backlog_engine.constants import (
    PROP_AGENT,
    PROP_CUSTOM_ID,
    PROP_EFFORT,
    PROP_PRIORITY,
    STATUS_KEYWORDS,
)


@dataclass(frozen=True, slots=True)
class PropertyNames:
    """Property names the engine reads; the first four are fixed by the data model."""

    required: tuple[str, ...]
    depends: str
    blocks: str
    test_plan: str
    component: str
    artifact: str
    backlinks: str
    goal: str
    criteria: str
    verify: str
    review_by: str
    custom_id: str = PROP_CUSTOM_ID
    agent: str = PROP_AGENT
    effort: str = PROP_EFFORT
    priority: str = PROP_PRIORITY


@dataclass(frozen=True, slots=True)
class EngineSettings:
    root: Path
    agents_dir: Path
    task_dirs: tuple[str, ...]
    log_dir: Path
    registry_index: str
    category_prefixes: tuple[str, ...]
    checkpoint_level: int
    item_number_width: int
    category_number_width: int
    properties: PropertyNames
    velocity_window_days: int
    burndown_window_days: int
    trend_increase_ratio: float
    trend_decrease_ratio: float
    fail_on_warning: bool
    status_keywords: frozenset[str] = field(default_factory=lambda: frozenset(STATUS_KEYWORDS))

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> EngineSettings:
        """Build settings from a mapping already validated by the config schema."""

        paths = config["paths"]
        identifiers = config["identifiers"]
        properties = config["properties"]
        analytics = config["analytics"]

        root = Path(paths["root"]).expanduser().resolve()
        agents_dir = Path(paths["agents_dir"])
        if not agents_dir.is_absolute():
            agents_dir = root / agents_dir
        log_dir = Path(paths["log_dir"])
        if not log_dir.is_absolute():
            log_dir = root / log_dir

        return cls(
            root=root,
            agents_dir=agents_dir,
            task_dirs=tuple(paths["task_dirs"]),
            log_dir=log_dir,
            registry_index=config["agents"]["registry_index"],
            category_prefixes=tuple(identifiers["category_prefixes"]),
            checkpoint_level=int(identifiers["checkpoint_level"]),
            item_number_width=int(identifiers["item_number_width"]),
            category_number_width=int(identifiers["category_number_width"]),
            properties=PropertyNames(
                required=tuple(properties["required"]),
                depends=properties["depends"],
                blocks=properties["blocks"],
                test_plan=properties["test_plan"],
                component=properties["component"],
                artifact=properties["artifact"],
                backlinks=properties["backlinks"],
                goal=properties["goal"],
                criteria=properties["criteria"],
                verify=properties["verify"],
                review_by=properties["review_by"],
            ),
            velocity_window_days=int(analytics["velocity_window_days"]),
            burndown_window_days=int(analytics["burndown_window_days"]),
            trend_increase_ratio=float(analytics["trend_increase_ratio"]),
            trend_decrease_ratio=float(analytics["trend_decrease_ratio"]),
            fail_on_warning=bool(config["validation"]["fail_on_warning"]),
        )

    @classmethod
    def defaults(cls, root: Path, **overrides: Mapping[str, object]) -> EngineSettings:
        """Return built-in settings rooted at ``root`` (section overlays allowed)."""

        config = merge_config(default_config(), {"paths": {"root": str(root)}})
        for section, values in overrides.items():
            config = merge_config(config, {section: values})
        return cls.from_config(config)

    def task_roots(self) -> tuple[Path, ...]:
        return tuple(self.root / entry for entry in self.task_dirs)


__all__ = ["EngineSettings", "PropertyNames"]
