"""
backlog-engine — unit tests for config schema

File: tests/unit/config/test_schema.py

Purpose
- Validate strict config validation, deterministic issue paths, and merge semantics.
"""

from __future__ import annotations

import pytest

from backlog_engine.config.schema import (
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)


def _issue_paths(config: object) -> dict[str, str]:
    result = validate_config(config)
    return {issue.path: issue.message for issue in result.issues}


@pytest.mark.unit
def test_defaults_are_valid_and_copied() -> None:
    first = default_config()
    first["paths"]["task_dirs"].append("scratch")

    result = validate_config(default_config())
    assert result.is_valid
    assert result.config is not None
    assert "scratch" not in result.config["paths"]["task_dirs"]


@pytest.mark.unit
def test_unknown_fields_are_reported_with_paths() -> None:
    config = merge_config(default_config(), {"paths": {"rot": "."}, "extra": {}})

    issues = _issue_paths(config)

    assert issues["paths.rot"] == "unknown field"
    assert issues["extra"] == "unknown field"


@pytest.mark.unit
def test_schema_version_mismatch_carries_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 2}})

    issues = _issue_paths(config)

    assert issues["meta.schema_version"] == migration_guidance(2)
    assert "newer" in migration_guidance(2)
    assert migration_guidance(1) == "schema version is current"


@pytest.mark.unit
def test_trend_ratios_are_cross_checked() -> None:
    config = merge_config(
        default_config(),
        {"analytics": {"trend_increase_ratio": 1.1, "trend_decrease_ratio": 1.3}},
    )

    issues = _issue_paths(config)

    assert "analytics.trend_decrease_ratio" in issues


@pytest.mark.unit
@pytest.mark.parametrize("entry", ["/abs/projects", "../outside"])
def test_task_dirs_must_stay_under_the_root(entry: str) -> None:
    config = merge_config(default_config(), {"paths": {"task_dirs": ["projects", entry]}})

    issues = _issue_paths(config)

    assert "paths.task_dirs[1]" in issues


@pytest.mark.unit
def test_type_and_enum_errors_collect_together() -> None:
    config = merge_config(
        default_config(),
        {
            "analytics": {"velocity_window_days": 0},
            "observability": {"log_level": "LOUD"},
            "identifiers": {"category_prefixes": ["proj"]},
            "agents": {"registry_index": "nested/index.org"},
        },
    )

    with pytest.raises(ConfigValidationError) as error:
        assert_valid_config(config)

    paths = {issue.path for issue in error.value.issues}
    assert {
        "analytics.velocity_window_days",
        "observability.log_level",
        "identifiers.category_prefixes",
        "agents.registry_index",
    } <= paths


@pytest.mark.unit
def test_property_names_are_upper_cased() -> None:
    config = merge_config(
        default_config(),
        {"properties": {"required": ["custom_id", "agent"], "depends": "needs"}},
    )

    normalized = assert_valid_config(config)

    assert normalized["properties"]["required"] == ["CUSTOM_ID", "AGENT"]
    assert normalized["properties"]["depends"] == "NEEDS"


@pytest.mark.unit
def test_profile_overlay_merges_partial_sections() -> None:
    strict = apply_profile_overlay(default_config(), "strict")
    assert strict["validation"]["fail_on_warning"] is True
    assert strict["analytics"] == default_config()["analytics"]

    assert apply_profile_overlay(default_config(), None) == default_config()
    with pytest.raises(ConfigValidationError, match="not defined"):
        apply_profile_overlay(default_config(), "missing")
