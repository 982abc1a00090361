"""
backlog-engine — configuration schema and validation.

File: src/backlog_engine/config/schema.py

Purpose
- Built-in defaults for ``backlog.toml`` plus the strict validator every config layer
  passes through.

Functional requirements
- Each section is a table of typed fields; unknown fields, wrong types, bad enum
  values and out-of-range numbers are reported together, each with its dotted path
  (``analytics.velocity_window_days``, ``paths.task_dirs[1]``).
- Property names are normalized to upper case.
- Profiles (``strict``, ``lenient`` and any ``[profiles.<name>]`` table) are partial
  overlays over every section except ``meta``.
"""
from __future__ import annotations

import copy
import functools
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from backlog_engine.constants import (
    AGENT_REGISTRY_INDEX,
    AGENTS_DIR,
    BURNDOWN_WINDOW_DAYS,
    CATEGORY_PREFIXES,
    CHECKPOINT_LEVEL,
    CONFIG_SCHEMA_VERSION,
    LOGS_DIR,
    PROP_ARTIFACT,
    PROP_BACKLINKS,
    PROP_BLOCKS,
    PROP_COMPONENT,
    PROP_CRITERIA,
    PROP_DEPENDS,
    PROP_GOAL,
    PROP_REVIEW_BY,
    PROP_TEST_PLAN,
    PROP_VERIFY,
    REQUIRED_ITEM_PROPERTIES,
    TASK_DIRS,
    TREND_DECREASE_RATIO,
    TREND_INCREASE_RATIO,
    VELOCITY_WINDOW_DAYS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "lenient")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_PREFIX_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*$")
_PROPERTY_NAME_PATTERN = re.compile(r"^[A-Z][A-Z0-9_-]*$")
_FILENAME_PATTERN = re.compile(r"^[^/\\\x00]+$")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "root"),
    ("paths", "log_dir"),
)

PROPERTY_FIELDS: Final[tuple[str, ...]] = (
    "artifact",
    "backlinks",
    "blocks",
    "component",
    "criteria",
    "depends",
    "goal",
    "review_by",
    "test_plan",
    "verify",
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    root: str
    agents_dir: str
    task_dirs: list[str]
    log_dir: str


class AgentsConfig(TypedDict):
    registry_index: str


class IdentifiersConfig(TypedDict):
    category_prefixes: list[str]
    checkpoint_level: int
    item_number_width: int
    category_number_width: int


class PropertiesConfig(TypedDict):
    required: list[str]
    depends: str
    blocks: str
    test_plan: str
    component: str
    artifact: str
    backlinks: str
    goal: str
    criteria: str
    verify: str
    review_by: str


class AnalyticsConfig(TypedDict):
    velocity_window_days: int
    burndown_window_days: int
    trend_increase_ratio: float
    trend_decrease_ratio: float


class ValidationConfig(TypedDict):
    fail_on_warning: bool


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_to_file: bool


class ProfileOverlay(TypedDict, total=False):
    paths: dict[str, object]
    agents: dict[str, object]
    identifiers: dict[str, object]
    properties: dict[str, object]
    analytics: dict[str, object]
    validation: dict[str, object]
    observability: dict[str, object]


class BacklogConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    agents: AgentsConfig
    identifiers: IdentifiersConfig
    properties: PropertiesConfig
    analytics: AnalyticsConfig
    validation: ValidationConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[BacklogConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "paths": {
        "root": ".",
        "agents_dir": AGENTS_DIR.as_posix(),
        "task_dirs": list(TASK_DIRS),
        "log_dir": f"{LOGS_DIR.as_posix()}/",
    },
    "agents": {
        "registry_index": AGENT_REGISTRY_INDEX,
    },
    "identifiers": {
        "category_prefixes": list(CATEGORY_PREFIXES),
        "checkpoint_level": CHECKPOINT_LEVEL,
        "item_number_width": 3,
        "category_number_width": 3,
    },
    "properties": {
        "required": list(REQUIRED_ITEM_PROPERTIES),
        "depends": PROP_DEPENDS,
        "blocks": PROP_BLOCKS,
        "test_plan": PROP_TEST_PLAN,
        "component": PROP_COMPONENT,
        "artifact": PROP_ARTIFACT,
        "backlinks": PROP_BACKLINKS,
        "goal": PROP_GOAL,
        "criteria": PROP_CRITERIA,
        "verify": PROP_VERIFY,
        "review_by": PROP_REVIEW_BY,
    },
    "analytics": {
        "velocity_window_days": VELOCITY_WINDOW_DAYS,
        "burndown_window_days": BURNDOWN_WINDOW_DAYS,
        "trend_increase_ratio": TREND_INCREASE_RATIO,
        "trend_decrease_ratio": TREND_DECREASE_RATIO,
    },
    "validation": {
        "fail_on_warning": False,
    },
    "observability": {
        "log_level": "WARNING",
        "log_format": "json",
        "log_to_file": False,
    },
    "profiles": {
        "strict": {
            "validation": {"fail_on_warning": True},
        },
        "lenient": {
            "validation": {"fail_on_warning": False},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Outcome of ``validate_config``; ``config`` is the normalized payload when valid."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised with every collected issue when a config payload is rejected."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: rejected"))


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


# A field parser returns the normalized value, or None after recording an issue.
_FieldParser = Callable[[object, str, _IssueCollector], Any]


def default_config() -> BacklogConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade backlog.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the backlog-engine package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; nested tables merge, other values replace."""

    merged: dict[str, Any] = {key: copy.deepcopy(value) for key, value in base.items()}
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping):
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile onto ``config`` and validate the result.

    ``None`` or a blank name returns an unchanged copy.
    """

    selected = (profile or "").strip()
    if not selected:
        return merge_config({}, config)

    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        issue = ConfigValidationIssue("profiles", f"profile {selected!r} is not defined")
        raise ConfigValidationError((issue,))
    if not isinstance(overlay, Mapping):
        issue = ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be a table")
        raise ConfigValidationError((issue,))
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Check every section of ``config`` and collect all issues with dotted paths."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected a table, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=issues.items())

    _check_keys(config, set(_SCHEMA) | {"profiles"}, set(_SCHEMA), "", issues)
    normalized: dict[str, Any] = {}
    for section in sorted(_SCHEMA):
        if isinstance(raw := config.get(section), Mapping):
            normalized[section] = _validate_section(section, raw, section, issues, partial=False)
        elif raw is not None:
            issues.add(section, f"expected a table, got {type(raw).__name__}")

    profiles = config.get("profiles")
    if isinstance(profiles, Mapping):
        normalized["profiles"] = _validate_profiles(profiles, issues)
    elif profiles is not None:
        issues.add("profiles", f"expected a table, got {type(profiles).__name__}")

    _check_trend_ratios(normalized.get("analytics", {}), issues)

    selected = (active_profile or "").strip()
    if selected and selected not in normalized.get("profiles", {}):
        issues.add("profiles", f"profile {selected!r} is not defined")

    if issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _text(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    if not value.strip():
        issues.add(path, "must not be empty")
        return None
    return value.strip()


def _path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is not None and "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _bare_filename(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is not None and not _FILENAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be a bare file name")
        return None
    return parsed


def _text_list(
    value: object, path: str, issues: _IssueCollector, *, allow_empty: bool = False
) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    if not value and not allow_empty:
        issues.add(path, "must not be empty")
        return None
    entries: list[str] = []
    for index, entry in enumerate(value):
        parsed = _text(entry, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        if parsed not in entries:
            entries.append(parsed)
    return entries


def _task_dirs(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    entries = _text_list(value, path, issues)
    if entries is None:
        return None
    for index, entry in enumerate(entries):
        if entry.startswith("/") or ".." in entry.split("/"):
            issues.add(f"{path}[{index}]", "task directory must be relative to the backlog root")
    return entries


def _prefixes(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    entries = _text_list(value, path, issues)
    if entries is None:
        return None
    bad = [entry for entry in entries if not _PREFIX_PATTERN.fullmatch(entry)]
    if bad:
        issues.add(path, f"prefixes must match ^[A-Z][A-Z0-9]*$: {bad}")
        return None
    return entries


def _property_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is None:
        return None
    if not _PROPERTY_NAME_PATTERN.fullmatch(parsed.upper()):
        issues.add(path, f"invalid property name {parsed!r}")
        return None
    return parsed.upper()


def _property_names(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    entries = _text_list(value, path, issues, allow_empty=True)
    if entries is None:
        return None
    names = [entry.upper() for entry in entries]
    bad = [name for name in names if not _PROPERTY_NAME_PATTERN.fullmatch(name)]
    if bad:
        issues.add(path, f"invalid property names: {bad}")
        return None
    return names


def _boolean(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _integer(value: object, path: str, issues: _IssueCollector, *, minimum: int) -> int | None:
    # bool is an int subclass; TOML booleans are never valid counts.
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _ratio(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed) or parsed < 0.0:
        issues.add(path, "must be a finite number >= 0")
        return None
    return parsed


def _choice(
    value: object, path: str, issues: _IssueCollector, *, choices: tuple[str, ...]
) -> str | None:
    parsed = _text(value, path, issues)
    if parsed is not None and parsed not in choices:
        issues.add(path, f"invalid value {parsed!r}; expected one of: {', '.join(choices)}")
        return None
    return parsed


def _schema_version(value: object, path: str, issues: _IssueCollector) -> int | None:
    parsed = _integer(value, path, issues, minimum=1)
    if parsed is not None and parsed != ConfigSchemaVersion:
        issues.add(path, migration_guidance(parsed))
    return parsed


_count = functools.partial(_integer, minimum=1)

_SCHEMA: Final[dict[str, dict[str, _FieldParser]]] = {
    "meta": {"schema_version": _schema_version},
    "paths": {
        "root": _path_text,
        "agents_dir": _path_text,
        "task_dirs": _task_dirs,
        "log_dir": _path_text,
    },
    "agents": {"registry_index": _bare_filename},
    "identifiers": {
        "category_prefixes": _prefixes,
        "checkpoint_level": _count,
        "item_number_width": _count,
        "category_number_width": _count,
    },
    "properties": {
        "required": _property_names,
        **{name: _property_name for name in PROPERTY_FIELDS},
    },
    "analytics": {
        "velocity_window_days": _count,
        "burndown_window_days": _count,
        "trend_increase_ratio": _ratio,
        "trend_decrease_ratio": _ratio,
    },
    "validation": {"fail_on_warning": _boolean},
    "observability": {
        "log_level": functools.partial(_choice, choices=("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_format": functools.partial(_choice, choices=("json", "text")),
        "log_to_file": _boolean,
    },
}


# ---------------------------------------------------------------------------
# Section and profile validation
# ---------------------------------------------------------------------------


def _validate_section(
    section: str,
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    """Validate one section; ``partial`` sections (profile overlays) may omit fields."""

    fields = _SCHEMA[section]
    _check_keys(payload, set(fields), set() if partial else set(fields), path, issues)
    out: dict[str, Any] = {}
    for key in sorted(fields):
        if key in payload:
            parsed = fields[key](payload[key], f"{path}.{key}", issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_profiles(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    overlayable = set(_SCHEMA) - {"meta"}
    profiles: dict[str, Any] = {}
    for name in sorted(payload):
        path = f"profiles.{name}"
        overlay = payload[name]
        if not isinstance(name, str) or not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.add(path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        if not isinstance(overlay, Mapping):
            issues.add(path, f"expected a table, got {type(overlay).__name__}")
            continue
        _check_keys(overlay, overlayable, set(), path, issues)
        sections: dict[str, Any] = {}
        for section in sorted(overlayable & set(overlay)):
            raw = overlay[section]
            if isinstance(raw, Mapping):
                sections[section] = _validate_section(
                    section, raw, f"{path}.{section}", issues, partial=True
                )
            else:
                issues.add(f"{path}.{section}", f"expected a table, got {type(raw).__name__}")
        profiles[name] = sections
    return profiles


def _check_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    prefix = f"{path}." if path else ""
    for key in sorted(map(str, payload)):
        if key not in allowed:
            issues.add(prefix + key, "unknown field")
    for key in sorted(required - set(payload)):
        issues.add(prefix + key, "missing required field")


def _check_trend_ratios(analytics: Mapping[str, object], issues: _IssueCollector) -> None:
    increase = analytics.get("trend_increase_ratio")
    decrease = analytics.get("trend_decrease_ratio")
    if isinstance(increase, float) and isinstance(decrease, float) and decrease > increase:
        issues.add(
            "analytics.trend_decrease_ratio",
            "must not exceed analytics.trend_increase_ratio",
        )


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "BacklogConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "PROPERTY_FIELDS",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
