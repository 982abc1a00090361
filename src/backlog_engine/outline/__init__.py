"""Outline document parsing: headings, status keywords, property drawers, timestamps."""

from backlog_engine.outline.parser import (
    DocumentReadError,
    OutlineDocument,
    OutlineHeading,
    PropertyLine,
    parse_closed_timestamp,
    parse_outline,
    read_outline,
)

__all__ = [
    "DocumentReadError",
    "OutlineDocument",
    "OutlineHeading",
    "PropertyLine",
    "parse_closed_timestamp",
    "parse_outline",
    "read_outline",
]
