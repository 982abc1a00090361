"""Public observability primitives: structured logging and correlation fields."""

from backlog_engine.observability.logging import (
    LOG_FORMATS,
    LoggingConfig,
    StructuredLoggingHandle,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    new_run_id,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

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
