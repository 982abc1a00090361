"""
backlog-engine — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate that structlog events render as JSON lines (or text) through stdlib sinks,
  carry correlation fields, honour the level, and land in the per-run log file.
"""

from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

import pytest
import structlog

from backlog_engine.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    new_run_id,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _json_lines(text: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@pytest.mark.unit
def test_structlog_events_render_as_json_lines_with_correlation() -> None:
    stream = io.StringIO()
    setup_structured_logging(LoggingConfig(run_id="run-json", level="INFO", stream=stream))
    logger = structlog.get_logger("backlog_engine.tests.logging")

    with correlation_scope(command="validate-all", file="projects/core.org"):
        logger.info("index_built", documents=3, items=7)

    records = _json_lines(stream.getvalue())
    assert len(records) == 1
    record = records[0]
    assert record["event"] == "index_built"
    assert record["level"] == "INFO"
    assert record["logger"] == "backlog_engine.tests.logging"
    assert record["run_id"] == "run-json"
    assert record["command"] == "validate-all"
    assert record["file"] == "projects/core.org"
    assert record["fields"] == {"documents": 3, "items": 7}
    assert str(record["timestamp"]).endswith("Z")


@pytest.mark.unit
def test_events_below_the_configured_level_are_dropped() -> None:
    stream = io.StringIO()
    setup_logging({"log_level": "WARNING"}, run_id="run-level", stream=stream)
    logger = structlog.get_logger("backlog_engine.tests.logging")

    logger.info("ignored_event")
    logger.warning("kept_event", reason="x")

    events = [record["event"] for record in _json_lines(stream.getvalue())]
    assert events == ["kept_event"]


@pytest.mark.unit
def test_text_format_renders_key_value_pairs() -> None:
    stream = io.StringIO()
    setup_logging(
        {"log_level": "DEBUG", "log_format": "text"}, run_id="run-text", stream=stream
    )
    structlog.get_logger("backlog_engine.tests.logging").debug("cache_cleared", entries=2)

    line = stream.getvalue().strip()
    assert "cache_cleared" in line
    assert "entries=2" in line
    assert "run_id=run-text" in line


@pytest.mark.unit
def test_file_sink_writes_per_run_json_lines(tmp_path: Path) -> None:
    handle = setup_logging(
        {"log_level": "INFO", "log_to_file": True},
        run_id="run-file",
        log_dir=tmp_path,
        stream=io.StringIO(),
    )
    structlog.get_logger("backlog_engine.tests.logging").info("validation_finished", errors=0)
    shutdown_logging(handle)

    log_path = tmp_path / "run-file" / "backlog.jsonl"
    assert handle.log_path == log_path
    records = _json_lines(log_path.read_text(encoding="utf-8"))
    assert [record["event"] for record in records] == ["validation_finished"]
    assert handle.is_shutdown
    assert get_active_logging_handle() is None


@pytest.mark.unit
def test_correlation_scope_restores_previous_context() -> None:
    assert "command" not in get_correlation_context()
    with correlation_scope(command="dashboard", file=None):
        assert get_correlation_context()["command"] == "dashboard"
        assert "file" not in get_correlation_context()
    assert "command" not in get_correlation_context()


@pytest.mark.unit
def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ValueError, match="run_id"):
        setup_structured_logging(LoggingConfig(run_id="  "))
    with pytest.raises(ValueError, match="log format"):
        setup_structured_logging(LoggingConfig(run_id="run-x", log_format="xml"))
    with pytest.raises(ValueError, match="logging level"):
        setup_structured_logging(LoggingConfig(run_id="run-x", level="LOUD"))
    with pytest.raises(ValueError, match="collides"):
        with correlation_scope(name="x"):
            pass


@pytest.mark.unit
def test_new_run_ids_are_unique_and_path_safe() -> None:
    first, second = new_run_id(), new_run_id()
    assert first != second
    assert "/" not in first
