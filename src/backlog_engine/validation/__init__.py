"""Structural and referential validation of the indexed backlog."""

from backlog_engine.validation.engine import (
    ValidationReport,
    cycle_findings,
    validate_all,
    validate_file,
)
from backlog_engine.validation.rules import CHECKPOINT_RULES, ITEM_RULES, RuleContext

__all__ = [
    "CHECKPOINT_RULES",
    "ITEM_RULES",
    "RuleContext",
    "ValidationReport",
    "cycle_findings",
    "validate_all",
    "validate_file",
]
