"""Per-entity validation rules.

Each rule receives one entity plus a :class:`RuleContext` and yields findings.
Rules never raise for structural problems and never look at other rules' output.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from backlog_engine.config.settings import EngineSettings
from backlog_engine.domain.ids import (
    CHECKPOINT_ID_PATTERN_DESCRIPTION,
    EFFORT_PATTERN_DESCRIPTION,
    ITEM_ID_PATTERN_DESCRIPTION,
    is_valid_checkpoint_id,
    is_valid_item_id,
    parse_effort_minutes,
)
from backlog_engine.domain.models import Checkpoint, Item, Severity, ValidationFinding
from backlog_engine.index.snapshot import IndexSnapshot
from backlog_engine.utils.fs import display_path

RULE_REQUIRED_PROPERTIES: Final[str] = "required-properties"
RULE_ID_FORMAT: Final[str] = "id-format"
RULE_UNIQUE_ID: Final[str] = "unique-id"
RULE_VALID_AGENT: Final[str] = "valid-agent"
RULE_EFFORT_FORMAT: Final[str] = "effort-format"
RULE_VALID_DEPENDS: Final[str] = "valid-depends"
RULE_VALID_BLOCKS: Final[str] = "valid-blocks"
RULE_TEST_PLAN: Final[str] = "test-plan"
RULE_COMPONENT_REF: Final[str] = "component-ref"
RULE_CHECKPOINT_REQUIRED: Final[str] = "checkpoint-required"
RULE_CHECKPOINT_ID_FORMAT: Final[str] = "checkpoint-id-format"
RULE_CHECKPOINT_LEVEL: Final[str] = "checkpoint-level"
RULE_CHECKPOINT_PARENT: Final[str] = "checkpoint-parent"
RULE_DEPENDENCY_CYCLE: Final[str] = "dependency-cycle"


@dataclass(frozen=True, slots=True)
class RuleContext:
    snapshot: IndexSnapshot
    settings: EngineSettings

    def display_path(self, path: Path) -> str:
        return display_path(path, self.settings.root)

    def finding(
        self,
        entity: Item | Checkpoint,
        rule: str,
        severity: Severity,
        message: str,
        *,
        hint: str | None = None,
    ) -> ValidationFinding:
        return ValidationFinding(
            file=self.display_path(entity.file),
            line=entity.line,
            rule=rule,
            severity=severity,
            message=message,
            hint=hint,
            context=entity.id or entity.title or None,
        )


ItemRule = Callable[[Item, RuleContext], Iterable[ValidationFinding]]
CheckpointRule = Callable[[Checkpoint, RuleContext], Iterable[ValidationFinding]]


def check_required_properties(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    for name in context.settings.properties.required:
        if item.properties.get(name) is None:
            yield context.finding(
                item,
                RULE_REQUIRED_PROPERTIES,
                Severity.ERROR,
                f"missing required property {name}",
                hint=f"add ':{name}:' to the item's property drawer",
            )


def check_id_format(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    if not item.id:
        yield context.finding(
            item,
            RULE_ID_FORMAT,
            Severity.WARNING,
            "item has no identifier",
            hint=f"set CUSTOM_ID or start the title with an ID like {ITEM_ID_PATTERN_DESCRIPTION}",
        )
    elif not is_valid_item_id(item.id):
        yield context.finding(
            item,
            RULE_ID_FORMAT,
            Severity.WARNING,
            f"item id {item.id!r} does not match the item id format",
            hint=f"expected {ITEM_ID_PATTERN_DESCRIPTION}",
        )


def check_unique_id(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    if not item.id:
        return
    definitions = context.snapshot.item_definitions.get(item.id, ())
    if len(definitions) < 2:
        return
    first = definitions[0]
    if first.file == item.file and first.line == item.line:
        return
    yield context.finding(
        item,
        RULE_UNIQUE_ID,
        Severity.ERROR,
        f"duplicate item id {item.id!r}",
        hint=f"first defined at {context.display_path(first.file)}:{first.line}",
    )


def check_agent(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    if item.agent is None:
        return
    if context.snapshot.agents.resolve(item.agent) is None:
        yield context.finding(
            item,
            RULE_VALID_AGENT,
            Severity.ERROR,
            f"agent {item.agent!r} is not defined in the agent registry",
            hint=f"define it in {context.display_path(context.settings.agents_dir)}/",
        )


def check_effort_format(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    if item.effort is None:
        return
    if parse_effort_minutes(item.effort) is None:
        yield context.finding(
            item,
            RULE_EFFORT_FORMAT,
            Severity.WARNING,
            f"effort {item.effort!r} is not a valid duration",
            hint=f"expected {EFFORT_PATTERN_DESCRIPTION}",
        )


def check_depends(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    for ref in item.depends:
        if context.snapshot.resolve_ref(ref) is None:
            yield context.finding(
                item,
                RULE_VALID_DEPENDS,
                Severity.ERROR,
                f"dependency {ref!r} does not resolve to a known item",
                hint="use an existing item id or a qualified CATEGORY-ID:ITEM-ID reference",
            )


def check_blocks(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    for ref in item.blocks:
        if context.snapshot.resolve_ref(ref) is None:
            yield context.finding(
                item,
                RULE_VALID_BLOCKS,
                Severity.WARNING,
                f"blocked item {ref!r} does not resolve to a known item",
            )


def check_test_plan(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    name = context.settings.properties.test_plan
    if item.properties.get(name) is None:
        yield context.finding(
            item,
            RULE_TEST_PLAN,
            Severity.WARNING,
            f"no {name} property",
            hint="describe how the item will be verified",
        )


def check_component(item: Item, context: RuleContext) -> Iterator[ValidationFinding]:
    name = context.settings.properties.component
    if item.properties.get(name) is None:
        yield context.finding(item, RULE_COMPONENT_REF, Severity.INFO, f"no {name} property")


def check_checkpoint_required(
    checkpoint: Checkpoint, context: RuleContext
) -> Iterator[ValidationFinding]:
    names = context.settings.properties
    if not checkpoint.id:
        yield context.finding(
            checkpoint,
            RULE_CHECKPOINT_REQUIRED,
            Severity.WARNING,
            "checkpoint has no identifier",
            hint=f"set CUSTOM_ID or start the title with {CHECKPOINT_ID_PATTERN_DESCRIPTION}",
        )
    if checkpoint.criteria is None:
        yield context.finding(
            checkpoint,
            RULE_CHECKPOINT_REQUIRED,
            Severity.WARNING,
            f"missing checkpoint property {names.criteria}",
        )
    if checkpoint.verify is None:
        yield context.finding(
            checkpoint,
            RULE_CHECKPOINT_REQUIRED,
            Severity.WARNING,
            f"missing checkpoint property {names.verify}",
        )


def check_checkpoint_id_format(
    checkpoint: Checkpoint, context: RuleContext
) -> Iterator[ValidationFinding]:
    if checkpoint.id and not is_valid_checkpoint_id(checkpoint.id):
        yield context.finding(
            checkpoint,
            RULE_CHECKPOINT_ID_FORMAT,
            Severity.WARNING,
            f"checkpoint id {checkpoint.id!r} does not match the checkpoint id format",
            hint=f"expected {CHECKPOINT_ID_PATTERN_DESCRIPTION}",
        )


def check_checkpoint_level(
    checkpoint: Checkpoint, context: RuleContext
) -> Iterator[ValidationFinding]:
    expected = context.settings.checkpoint_level
    if checkpoint.level != expected:
        yield context.finding(
            checkpoint,
            RULE_CHECKPOINT_LEVEL,
            Severity.WARNING,
            f"checkpoint heading is at depth {checkpoint.level}, expected {expected}",
        )


def check_checkpoint_parent(
    checkpoint: Checkpoint, context: RuleContext
) -> Iterator[ValidationFinding]:
    if checkpoint.parent_number is None:
        return
    numbers = {category.number for category in context.snapshot.all_categories()}
    if checkpoint.parent_number not in numbers:
        yield context.finding(
            checkpoint,
            RULE_CHECKPOINT_PARENT,
            Severity.INFO,
            f"checkpoint refers to category number {checkpoint.parent_number}, "
            "which no category defines",
        )


ITEM_RULES: Final[tuple[ItemRule, ...]] = (
    check_required_properties,
    check_id_format,
    check_unique_id,
    check_agent,
    check_effort_format,
    check_depends,
    check_blocks,
    check_test_plan,
    check_component,
)

CHECKPOINT_RULES: Final[tuple[CheckpointRule, ...]] = (
    check_checkpoint_required,
    check_checkpoint_id_format,
    check_checkpoint_level,
    check_checkpoint_parent,
)


__all__ = [
    "CHECKPOINT_RULES",
    "ITEM_RULES",
    "RULE_CHECKPOINT_ID_FORMAT",
    "RULE_CHECKPOINT_LEVEL",
    "RULE_CHECKPOINT_PARENT",
    "RULE_CHECKPOINT_REQUIRED",
    "RULE_COMPONENT_REF",
    "RULE_DEPENDENCY_CYCLE",
    "RULE_EFFORT_FORMAT",
    "RULE_ID_FORMAT",
    "RULE_REQUIRED_PROPERTIES",
    "RULE_TEST_PLAN",
    "RULE_UNIQUE_ID",
    "RULE_VALID_AGENT",
    "RULE_VALID_BLOCKS",
    "RULE_VALID_DEPENDS",
    "RuleContext",
]
