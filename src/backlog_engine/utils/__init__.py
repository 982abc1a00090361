"""Utility exports for filesystem helpers."""

from backlog_engine.utils.fs import atomic_write, display_path

__all__ = ["atomic_write", "display_path"]
