"""
backlog-engine — domain layer

File: src/backlog_engine/domain/__init__.py

Purpose
- Backlog entities shared across layers: Item, Category, Checkpoint, Scope, ValidationFinding.

Functional requirements
- Domain objects are immutable and serialize through ``to_dict``.

Non-functional requirements
- No I/O in the domain layer.
"""

from backlog_engine.domain.models import (
    Category,
    Checkpoint,
    Item,
    ItemStatus,
    PropertyMap,
    Scope,
    Severity,
    ValidationFinding,
)

__all__ = [
    "Category",
    "Checkpoint",
    "Item",
    "ItemStatus",
    "PropertyMap",
    "Scope",
    "Severity",
    "ValidationFinding",
]
