"""
backlog-engine — structured logging

File: src/backlog_engine/observability/logging.py

Purpose
- Route structlog events through the stdlib ``backlog_engine`` logger so one set of
  handlers serves library modules and the CLI alike.
- Render each event as a JSON line (default) or a logfmt line, on stderr and
  optionally in ``<log_dir>/<run_id>/backlog.jsonl``.

Functional requirements
- Every event carries ``timestamp`` (UTC, ``Z`` suffix), ``level``, ``logger``,
  ``event`` and ``run_id``; ``command``/``file`` when bound via ``correlation_scope``.
- Event keyword arguments are nested under ``fields`` in JSON output.
- Only one logging setup is active at a time; a new setup closes the previous one.
"""

from __future__ import annotations

import logging
import sys
import threading
import uuid
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, TextIO

import structlog
from structlog.typing import Processor

from backlog_engine.constants import LOGS_DIR

LOG_FORMATS: Final[frozenset[str]] = frozenset({"json", "text"})

_DEFAULT_LOG_FILENAME: Final[str] = "backlog.jsonl"
_DEFAULT_LOGGER_NAME: Final[str] = "backlog_engine"

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "command", "file")
# Top-level keys of a rendered event; everything else is an event field.
_ENVELOPE_KEYS: Final[frozenset[str]] = frozenset(
    {"timestamp", "level", "logger", "event", "exception", "stack", *_CORRELATION_KEYS}
)
_RESERVED_KEYS: Final[frozenset[str]] = frozenset(
    {"timestamp", "level", "logger", "event", "exception", "stack", "fields", "name", "message"}
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for one run's structured logging."""

    run_id: str
    base_log_dir: Path | str = Path(LOGS_DIR)
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "WARNING"
    log_format: str = "json"
    log_to_file: bool = False
    log_filename: str = _DEFAULT_LOG_FILENAME
    stream: TextIO | None = None


class StructuredLoggingHandle:
    """Owns the handlers attached by one ``setup_structured_logging`` call."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        handlers: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._handlers = handlers
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            for handler in self._handlers:
                self.logger.removeHandler(handler)
                handler.close()
            self._closed = True


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
    stream: TextIO | None = None,
) -> StructuredLoggingHandle:
    """Configure logging from the ``[observability]`` config section.

    ``log_dir`` is the base directory for the per-run file sink, which is only
    opened when ``log_to_file`` is set. ``stream`` defaults to ``sys.stderr``.
    """

    section = dict(observability_config or {})
    level = section.get("log_level", "WARNING")
    log_format = section.get("log_format", "json")
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=log_dir if log_dir is not None else Path(LOGS_DIR),
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "WARNING",
            log_format=log_format if isinstance(log_format, str) else "json",
            log_to_file=bool(section.get("log_to_file", False)),
            stream=stream,
        )
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    run_id = _require_run_id(config.run_id)
    level = _resolve_level(config.level)
    log_format = config.log_format.strip().lower()
    if log_format not in LOG_FORMATS:
        expected = ", ".join(sorted(LOG_FORMATS))
        raise ValueError(f"unsupported log format {config.log_format!r}; expected {expected}")

    shutdown_logging()

    console = logging.StreamHandler(config.stream or sys.stderr)
    console.setFormatter(_build_formatter(run_id, as_json=log_format == "json"))
    handlers: list[logging.Handler] = [console]

    log_path: Path | None = None
    if config.log_to_file:
        log_path = Path(config.base_log_dir) / run_id / config.log_filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_sink = logging.FileHandler(log_path, encoding="utf-8")
        file_sink.setFormatter(_build_formatter(run_id, as_json=True))
        handlers.append(file_sink)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
    for handler in handlers:
        handler.setLevel(level)
        logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            *_timestamped_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handle = StructuredLoggingHandle(
        logger=logger, run_id=run_id, log_path=log_path, handlers=tuple(handlers)
    )
    global _ACTIVE_HANDLE
    with _ACTIVE_HANDLE_LOCK:
        _ACTIVE_HANDLE = handle
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Close ``handle`` (the active one by default); a no-op when nothing is active."""

    global _ACTIVE_HANDLE
    with _ACTIVE_HANDLE_LOCK:
        target = handle if handle is not None else _ACTIVE_HANDLE
        if target is _ACTIVE_HANDLE:
            _ACTIVE_HANDLE = None
    if target is not None:
        target.shutdown()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def new_run_id(now: datetime | None = None) -> str:
    """Return a sortable, path-safe run id such as ``20260101T120000Z-1a2b3c4d``."""

    moment = (now or datetime.now(UTC)).astimezone(UTC)
    return f"{moment:%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:8]}"


def get_correlation_context() -> dict[str, str]:
    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for every event logged inside the block.

    ``None`` values are skipped so callers can pass optional context directly.
    """

    bound: dict[str, str] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if key in _RESERVED_KEYS:
            raise ValueError(f"correlation key {key!r} collides with an event key")
        text = str(value).strip()
        if not text:
            raise ValueError(f"correlation value for {key!r} must not be empty")
        bound[key] = text
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _timestamped_chain() -> list[Processor]:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _build_formatter(run_id: str, *, as_json: bool) -> structlog.stdlib.ProcessorFormatter:
    def envelope(
        _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        event_dict.setdefault("run_id", run_id)
        event_dict["level"] = str(event_dict.get("level", "")).upper()
        if not as_json:
            return event_dict
        extra = [key for key in event_dict if key not in _ENVELOPE_KEYS]
        fields = {key: _plain(event_dict.pop(key)) for key in extra}
        if fields:
            event_dict["fields"] = fields
        return event_dict

    renderer: Processor
    if as_json:
        renderer = structlog.processors.JSONRenderer(sort_keys=True, ensure_ascii=False)
    else:
        renderer = structlog.processors.LogfmtRenderer(
            key_order=["timestamp", "level", "event"], sort_keys=True, drop_missing=True
        )
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_timestamped_chain(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            envelope,
            renderer,
        ],
    )


def _plain(value: object) -> object:
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return value


def _require_run_id(run_id: str) -> str:
    text = run_id.strip() if isinstance(run_id, str) else ""
    if not text:
        raise ValueError("run_id must be a non-empty string")
    if Path(text).name != text:
        raise ValueError("run_id must not include path separators")
    return text


def _resolve_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return resolved


__all__ = [
    "LOG_FORMATS",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "new_run_id",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
