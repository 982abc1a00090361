"""
backlog-engine — unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
- Profile overlays and typed settings construction.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from backlog_engine.config import EngineSettings
from backlog_engine.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_bindings,
    load_config,
)
from backlog_engine.config.schema import ConfigValidationError, default_config


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.mark.unit
def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "backlog.toml"
    _write_config(
        config_path,
        """
[analytics]
velocity_window_days = 10
burndown_window_days = 21
""".strip(),
    )

    defaults_only = load_config(search_dir=tmp_path / "empty", environ={})
    assert defaults_only["analytics"]["velocity_window_days"] == 7

    file_only = load_config(config_path, environ={})
    assert file_only["analytics"]["velocity_window_days"] == 10

    env = {"BACKLOG_ANALYTICS_VELOCITY_WINDOW_DAYS": "12"}
    with_env = load_config(config_path, environ=env)
    assert with_env["analytics"]["velocity_window_days"] == 12
    assert with_env["analytics"]["burndown_window_days"] == 21

    with_cli = load_config(
        config_path,
        environ=env,
        cli_overrides={"analytics.velocity_window_days": 3},
    )
    assert with_cli["analytics"]["velocity_window_days"] == 3


@pytest.mark.unit
def test_env_overrides_are_coerced_by_default_type(tmp_path: Path) -> None:
    env = {
        "BACKLOG_VALIDATION_FAIL_ON_WARNING": "yes",
        "BACKLOG_ANALYTICS_TREND_INCREASE_RATIO": "1.5",
        "BACKLOG_PATHS_TASK_DIRS": "projects, ops ,",
        "BACKLOG_OBSERVABILITY_LOG_LEVEL": "DEBUG",
    }
    config = load_config(search_dir=tmp_path, environ=env)

    assert config["validation"]["fail_on_warning"] is True
    assert config["analytics"]["trend_increase_ratio"] == 1.5
    assert config["paths"]["task_dirs"] == ["projects", "ops"]
    assert config["observability"]["log_level"] == "DEBUG"


@pytest.mark.unit
def test_bad_env_value_raises_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="BACKLOG_ANALYTICS_VELOCITY_WINDOW_DAYS"):
        load_config(
            search_dir=tmp_path,
            environ={"BACKLOG_ANALYTICS_VELOCITY_WINDOW_DAYS": "soon"},
        )


@pytest.mark.unit
def test_paths_are_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_dir = tmp_path / "conf"
    _write_config(
        config_dir / "backlog.toml",
        """
[paths]
root = "../backlog"
log_dir = "run-logs"
""".strip(),
    )

    config = load_config(config_dir / "backlog.toml", environ={})

    assert config["paths"]["root"] == (tmp_path / "backlog").as_posix()
    assert config["paths"]["log_dir"] == (config_dir / "run-logs").as_posix()


@pytest.mark.unit
def test_profile_overlay_applies_after_file(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "backlog.toml",
        """
[profiles.ci]
validation = { fail_on_warning = true }
analytics = { velocity_window_days = 14 }
""".strip(),
    )

    strict = load_config(search_dir=tmp_path, profile="strict", environ={})
    assert strict["validation"]["fail_on_warning"] is True

    from_env = load_config(search_dir=tmp_path, environ={"BACKLOG_PROFILE": "ci"})
    assert from_env["analytics"]["velocity_window_days"] == 14

    with pytest.raises(ConfigValidationError, match="not defined"):
        load_config(search_dir=tmp_path, profile="nightly", environ={})


@pytest.mark.unit
def test_missing_explicit_config_file_is_a_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "nope.toml", environ={})


@pytest.mark.unit
def test_malformed_toml_is_a_load_error(tmp_path: Path) -> None:
    _write_config(tmp_path / "backlog.toml", "[paths\nroot = ")
    with pytest.raises(ConfigLoadError):
        load_config(search_dir=tmp_path, environ={})


@pytest.mark.unit
def test_effective_config_dump_is_deterministic(tmp_path: Path) -> None:
    first = dump_effective_config(load_config(search_dir=tmp_path, environ={}))
    second = dump_effective_config(load_config(search_dir=tmp_path, environ={}))

    assert first == second
    assert json.loads(first)["meta"]["schema_version"] == 1


@pytest.mark.unit
def test_settings_from_loaded_config(tmp_path: Path) -> None:
    config = load_config(
        search_dir=tmp_path,
        environ={},
        cli_overrides={"identifiers.item_number_width": 4, "properties.artifact": "doc"},
    )
    settings = EngineSettings.from_config(config)

    assert settings.root == tmp_path.resolve()
    assert settings.agents_dir == tmp_path.resolve() / "agents"
    assert settings.task_roots() == tuple(
        tmp_path.resolve() / name for name in ("projects", "bugs", "improvements")
    )
    assert settings.item_number_width == 4
    assert settings.properties.artifact == "DOC"
    assert settings.properties.required == ("CUSTOM_ID", "AGENT", "EFFORT", "PRIORITY")
    assert "TODO" in settings.status_keywords


@pytest.mark.unit
def test_env_bindings_follow_default_types() -> None:
    bindings = env_bindings(default_config())

    assert bindings["BACKLOG_PATHS_TASK_DIRS"].kind == "list"
    assert bindings["BACKLOG_ANALYTICS_VELOCITY_WINDOW_DAYS"].kind == "int"
    assert bindings["BACKLOG_VALIDATION_FAIL_ON_WARNING"].path == (
        "validation",
        "fail_on_warning",
    )
    assert not any(name.startswith("BACKLOG_META_") for name in bindings)
