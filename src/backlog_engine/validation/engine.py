"""
backlog-engine — validation engine

File: src/backlog_engine/validation/engine.py

Purpose
- Run the per-Item and per-Checkpoint rules plus the global dependency-cycle pass and
  assemble the machine-readable validation report.

Functional requirements
- ``validate_file`` checks the entities of one file against the full index and reports
  only the cycles that touch that file's items.
- ``validate_all`` checks every indexed entity and runs the global pass once.
- A report is valid when it has no error findings (and, with ``fail_on_warning``, no
  warnings). Severities never suppress each other.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from backlog_engine.analytics.metrics import StatusTally, status_tally
from backlog_engine.config.settings import EngineSettings
from backlog_engine.constants import REPORT_SCHEMA_VERSION
from backlog_engine.domain.models import (
    Checkpoint,
    Item,
    JSONValue,
    Severity,
    ValidationFinding,
)
from backlog_engine.index.snapshot import IndexSnapshot
from backlog_engine.ingestion.entities import build_entities
from backlog_engine.outline.parser import read_outline
from backlog_engine.planning.dependency_graph import format_cycle
from backlog_engine.validation.rules import (
    CHECKPOINT_RULES,
    ITEM_RULES,
    RULE_DEPENDENCY_CYCLE,
    RuleContext,
)

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationReport:
    findings: tuple[ValidationFinding, ...]
    metrics: StatusTally
    files: tuple[str, ...] = ()
    fail_on_warning: bool = False

    @property
    def errors(self) -> tuple[ValidationFinding, ...]:
        return self._with_severity(Severity.ERROR)

    @property
    def warnings(self) -> tuple[ValidationFinding, ...]:
        return self._with_severity(Severity.WARNING)

    @property
    def info(self) -> tuple[ValidationFinding, ...]:
        return self._with_severity(Severity.INFO)

    @property
    def valid(self) -> bool:
        if self.errors:
            return False
        return not (self.fail_on_warning and self.warnings)

    def by_rule(self, rule: str) -> tuple[ValidationFinding, ...]:
        return tuple(finding for finding in self.findings if finding.rule == rule)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": REPORT_SCHEMA_VERSION,
            "valid": self.valid,
            "errors": [finding.to_dict() for finding in self.errors],
            "warnings": [finding.to_dict() for finding in self.warnings],
            "info": [finding.to_dict() for finding in self.info],
            "metrics": self.metrics.to_dict(),
            "files": list(self.files),
        }

    def _with_severity(self, severity: Severity) -> tuple[ValidationFinding, ...]:
        return tuple(finding for finding in self.findings if finding.severity is severity)


@dataclass(slots=True)
class _FindingSink:
    items: list[ValidationFinding] = field(default_factory=list)

    def extend(self, findings: Iterable[ValidationFinding]) -> None:
        self.items.extend(findings)

    def sorted(self) -> tuple[ValidationFinding, ...]:
        return tuple(sorted(self.items, key=ValidationFinding.sort_key))


def validate_file(
    path: Path, snapshot: IndexSnapshot, settings: EngineSettings
) -> ValidationReport:
    """Validate one document's entities against the full index."""

    resolved = path.resolve()
    indexed = snapshot.documents.get(resolved)
    if indexed is not None:
        entities = indexed.entities
    else:
        document = read_outline(resolved, keywords=settings.status_keywords)
        entities = build_entities(document, settings)

    context = RuleContext(snapshot=snapshot, settings=settings)
    sink = _FindingSink()
    _run_entity_rules(entities.items, entities.checkpoints, context, sink)

    local_ids = {item.id for item in entities.items if item.id}
    sink.extend(cycle_findings(context, touching=local_ids))

    report = ValidationReport(
        findings=sink.sorted(),
        metrics=status_tally(entities.items),
        files=(context.display_path(resolved),),
        fail_on_warning=settings.fail_on_warning,
    )
    _log_report("file", report)
    return report


def validate_all(snapshot: IndexSnapshot, settings: EngineSettings) -> ValidationReport:
    """Validate every indexed entity and run the global cycle pass."""

    context = RuleContext(snapshot=snapshot, settings=settings)
    sink = _FindingSink()
    items = tuple(snapshot.all_items())
    _run_entity_rules(items, tuple(snapshot.all_checkpoints()), context, sink)
    sink.extend(cycle_findings(context))

    report = ValidationReport(
        findings=sink.sorted(),
        metrics=status_tally(items),
        files=tuple(context.display_path(path) for path in snapshot.documents),
        fail_on_warning=settings.fail_on_warning,
    )
    _log_report("all", report)
    return report


def cycle_findings(
    context: RuleContext, *, touching: Iterable[str] | None = None
) -> list[ValidationFinding]:
    """One error per dependency cycle; ``touching`` restricts to cycles through those IDs."""

    wanted = None if touching is None else set(touching)
    findings: list[ValidationFinding] = []
    for cycle in context.snapshot.dependency_graph().detect_cycles():
        if wanted is not None and wanted.isdisjoint(cycle):
            continue
        anchor = context.snapshot.items[cycle[0]]
        rendered = format_cycle(cycle)
        findings.append(
            ValidationFinding(
                file=context.display_path(anchor.file),
                line=anchor.line,
                rule=RULE_DEPENDENCY_CYCLE,
                severity=Severity.ERROR,
                message=f"dependency cycle: {rendered}",
                hint="remove one DEPENDS or BLOCKS reference along the cycle",
                context=rendered,
            )
        )
    return findings


def _run_entity_rules(
    items: Sequence[Item],
    checkpoints: Sequence[Checkpoint],
    context: RuleContext,
    sink: _FindingSink,
) -> None:
    for item in items:
        for item_rule in ITEM_RULES:
            sink.extend(item_rule(item, context))
    for checkpoint in checkpoints:
        for checkpoint_rule in CHECKPOINT_RULES:
            sink.extend(checkpoint_rule(checkpoint, context))


def _log_report(scope: str, report: ValidationReport) -> None:
    _logger.info(
        "validation_finished",
        scope=scope,
        valid=report.valid,
        errors=len(report.errors),
        warnings=len(report.warnings),
        info=len(report.info),
        files=len(report.files),
    )


__all__ = ["ValidationReport", "cycle_findings", "validate_all", "validate_file"]
