"""Command-line interface router for backlog-engine."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from backlog_engine.config import (
    ConfigLoadError,
    ConfigValidationError,
    EngineSettings,
    load_config,
)
from backlog_engine.index.snapshot import TaskRootError
from backlog_engine.main import ExitCode
from backlog_engine.observability import (
    correlation_scope,
    new_run_id,
    setup_logging,
    shutdown_logging,
)
from backlog_engine.outline.parser import DocumentReadError
from backlog_engine.session import BacklogSession
from backlog_engine.ui.render import CLIRenderer, create_renderer
from backlog_engine.validation.engine import ValidationReport

OUTPUT_FORMATS: Final[tuple[str, ...]] = ("text", "json", "yaml")


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.VALIDATION_FAILED)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class RunContext:
    """Per-invocation state handed to every command handler."""

    config: Mapping[str, Any]
    settings: EngineSettings
    session: BacklogSession
    run_id: str


Handler = Callable[[argparse.Namespace, RunContext], int]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="backlog",
        description=(
            "backlog-engine: validate and analyse outline-based task backlogs.\n\n"
            "Common workflows:\n"
            "  backlog validate-all          Validate every task document\n"
            "  backlog dashboard             Progress, workload and velocity summary\n"
            "  backlog next-id --item        Allocate the next free item ID\n"
            "  backlog sync-backlinks        Record item IDs in linked documents\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--root",
        default=None,
        help="Backlog root directory (default: paths.root from config, else cwd).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to backlog TOML config (default: <root>/backlog.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (strict, lenient, or user-defined).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit JSON output (same as --format json).",
    )
    common.add_argument(
        "--format",
        dest="output_format",
        choices=OUTPUT_FORMATS,
        default="text",
        help="Output format (default: text).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output, including fix hints.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate one task document against the full index",
        description=(
            "Run every item and checkpoint rule for one file. References are\n"
            "resolved against the whole backlog.\n\n"
            "Examples:\n"
            "  backlog validate tasks/core.org\n"
            "  backlog validate tasks/core.org --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("file", help="Outline document to validate")
    validate_parser.set_defaults(handler=_cmd_validate)

    validate_all_parser = subparsers.add_parser(
        "validate-all",
        parents=[common],
        help="Validate every task document and detect dependency cycles",
    )
    validate_all_parser.set_defaults(handler=_cmd_validate_all)

    # analytics -----------------------------------------------------------
    dashboard_parser = subparsers.add_parser(
        "dashboard",
        parents=[common],
        help="Show status tally, category progress, agent workload and velocity",
    )
    dashboard_parser.set_defaults(handler=_cmd_dashboard)

    blocked_parser = subparsers.add_parser(
        "blocked",
        parents=[common],
        help="List items that are blocked or wait on unfinished dependencies",
    )
    blocked_parser.set_defaults(handler=_cmd_blocked)

    velocity_parser = subparsers.add_parser(
        "velocity",
        parents=[common],
        help="Items closed per day over a trailing window, with trend",
    )
    velocity_parser.add_argument(
        "--days", type=_positive_int, default=None, help="Window size in days"
    )
    velocity_parser.set_defaults(handler=_cmd_velocity)

    burndown_parser = subparsers.add_parser(
        "burndown",
        parents=[common],
        help="Remaining estimated effort and projected completion",
    )
    burndown_parser.add_argument(
        "--days", type=_positive_int, default=None, help="Rate window size in days"
    )
    burndown_parser.set_defaults(handler=_cmd_burndown)

    # links ---------------------------------------------------------------
    audit_parser = subparsers.add_parser(
        "audit-links",
        parents=[common],
        help="Report file links whose target file or heading does not exist",
    )
    audit_parser.set_defaults(handler=_cmd_audit_links)

    sync_parser = subparsers.add_parser(
        "sync-backlinks",
        parents=[common],
        help="Append item IDs to the documents their artifact links point at",
    )
    sync_parser.set_defaults(handler=_cmd_sync_backlinks)

    # identifiers ---------------------------------------------------------
    next_id_parser = subparsers.add_parser(
        "next-id",
        parents=[common],
        help="Print the next free category, item or checkpoint ID",
        description=(
            "Examples:\n"
            "  backlog next-id --prefix PROJ\n"
            "  backlog next-id --item\n"
            "  backlog next-id --checkpoint PROJ-001\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    id_kind = next_id_parser.add_mutually_exclusive_group(required=True)
    id_kind.add_argument("--prefix", default=None, help="Category prefix (e.g. PROJ)")
    id_kind.add_argument("--item", action="store_true", help="Next item ID")
    id_kind.add_argument(
        "--checkpoint", metavar="CATEGORY_ID", default=None, help="Next checkpoint ID"
    )
    next_id_parser.set_defaults(handler=_cmd_next_id)

    # maintenance ---------------------------------------------------------
    clear_parser = subparsers.add_parser(
        "clear-caches",
        parents=[common],
        help="Drop the agent registry and item index caches",
    )
    clear_parser.set_defaults(handler=_cmd_clear_caches)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n\n"
            "Examples:\n"
            "  backlog config\n"
            "  backlog config --format yaml\n"
            "  backlog config --profile strict\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        context = _build_context(namespace)
        handle = setup_logging(
            context.config.get("observability"),
            run_id=context.run_id,
            log_dir=context.settings.log_dir,
        )
        try:
            with correlation_scope(run_id=context.run_id, command=namespace.command):
                result = handler(namespace, context)
        finally:
            shutdown_logging(handle)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except (TaskRootError, DocumentReadError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(ExitCode.CONFIG_ERROR)
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace, context: RunContext) -> int:
    path = Path(_require_str(getattr(args, "file", None), "file")).expanduser()
    with correlation_scope(file=path.as_posix()):
        report = context.session.validate_file(path)
    return _emit_validation(args, "validate", report)


def _cmd_validate_all(args: argparse.Namespace, context: RunContext) -> int:
    report = context.session.validate_all()
    return _emit_validation(args, "validate-all", report)


def _cmd_dashboard(args: argparse.Namespace, context: RunContext) -> int:
    dashboard = context.session.generate_dashboard()
    payload: dict[str, object] = {"command": "dashboard", **dashboard}
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    _render_dashboard(renderer, dashboard)
    return int(ExitCode.SUCCESS)


def _cmd_blocked(args: argparse.Namespace, context: RunContext) -> int:
    blockers = context.session.list_blocked()
    payload: dict[str, object] = {
        "command": "blocked",
        "blockers": [blocker.to_dict() for blocker in blockers],
    }
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    if not blockers:
        renderer.text("No blocked items.")
        return int(ExitCode.SUCCESS)
    rows = [
        [blocker.item_id, ", ".join(blocker.blocked_by) or "(marked blocked)"]
        for blocker in blockers
    ]
    renderer.table(["ITEM", "WAITING ON"], rows, title=f"Blocked items ({len(blockers)}):")
    return int(ExitCode.SUCCESS)


def _cmd_velocity(args: argparse.Namespace, context: RunContext) -> int:
    report = context.session.velocity_report(window_days=getattr(args, "days", None))
    payload: dict[str, object] = {"command": "velocity", **report.to_dict()}
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.kv("Window", f"{report.window_days} day(s)")
    renderer.kv("Closed", report.closed)
    renderer.kv("Closed (previous window)", report.earlier_closed)
    renderer.kv("Per day", f"{report.per_day:.2f}")
    renderer.kv("Trend", report.trend.value)
    return int(ExitCode.SUCCESS)


def _cmd_burndown(args: argparse.Namespace, context: RunContext) -> int:
    report = context.session.burndown_report(window_days=getattr(args, "days", None))
    payload: dict[str, object] = {"command": "burndown", **report.to_dict()}
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    projected = report.projected_days
    renderer.kv("Open items", report.open_items)
    renderer.kv("Remaining effort", _format_minutes(report.remaining_minutes))
    renderer.kv("Unestimated items", report.unestimated_items)
    renderer.kv(
        "Daily rate",
        f"{_format_minutes(round(report.daily_rate_minutes))}/day over {report.window_days} day(s)",
    )
    renderer.kv("Projected days", "unknown" if projected is None else f"{projected:.1f}")
    return int(ExitCode.SUCCESS)


def _cmd_audit_links(args: argparse.Namespace, context: RunContext) -> int:
    result = context.session.audit_links()
    exit_code = ExitCode.SUCCESS if result.ok else ExitCode.VALIDATION_FAILED
    payload: dict[str, object] = {"command": "audit-links", **result.to_dict()}
    if _emit_structured(args, payload):
        return int(exit_code)

    renderer = _get_renderer(args)
    for link in result.broken:
        renderer.text(f"{link.file}:{link.line}: {link.reason.value}: {link.target}")
        if renderer.verbose:
            renderer.text(f"    resolved to {link.resolved}")
    renderer.text(
        f"{len(result.broken)} broken link(s) in {result.checked_links} link(s) "
        f"across {result.scanned_files} file(s)"
    )
    return int(exit_code)


def _cmd_sync_backlinks(args: argparse.Namespace, context: RunContext) -> int:
    result = context.session.sync_backlinks()
    exit_code = ExitCode.VALIDATION_FAILED if result.unresolved else ExitCode.SUCCESS
    payload: dict[str, object] = {"command": "sync-backlinks", **result.to_dict()}
    if _emit_structured(args, payload):
        return int(exit_code)

    renderer = _get_renderer(args)
    appended = [update for update in result.updates if update.changed]
    for update in appended:
        anchor = f"::#{update.target_id}" if update.target_id else ""
        renderer.text(f"{update.item_id} -> {update.target_file}{anchor}")
    for entry in result.unresolved:
        renderer.text(f"{entry.file}:{entry.line}: {entry.reason.value}: {entry.target}")
    renderer.text(
        f"{len(appended)} backlink(s) added, {len(result.updates) - len(appended)} already "
        f"present, {len(result.unresolved)} unresolved"
    )
    return int(exit_code)


def _cmd_next_id(args: argparse.Namespace, context: RunContext) -> int:
    session = context.session
    prefix = _optional_str(getattr(args, "prefix", None))
    checkpoint = _optional_str(getattr(args, "checkpoint", None))
    try:
        if prefix is not None:
            kind, next_id = "category", session.next_category_id(prefix)
        elif checkpoint is not None:
            kind, next_id = "checkpoint", session.next_checkpoint_id(checkpoint)
        else:
            kind, next_id = "item", session.next_item_id()
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc

    payload: dict[str, object] = {"command": "next-id", "kind": kind, "id": next_id}
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)
    print(next_id)
    return int(ExitCode.SUCCESS)


def _cmd_clear_caches(args: argparse.Namespace, context: RunContext) -> int:
    was_built = context.session.cache.is_built
    context.session.clear_caches()
    payload: dict[str, object] = {"command": "clear-caches", "cleared": was_built}
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)
    _get_renderer(args).text("Caches cleared.")
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace, context: RunContext) -> int:
    profile = _optional_str(getattr(args, "profile", None))
    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": dict(context.config),
    }
    if _emit_structured(args, payload):
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(context.config, indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _emit_yaml(payload: Mapping[str, object]) -> None:
    """Emit a YAML document to stdout with deterministic key order."""

    sys.stdout.write(
        yaml.safe_dump(
            _plain(payload), sort_keys=True, allow_unicode=True, default_flow_style=False
        )
    )


def _emit_structured(args: argparse.Namespace, payload: Mapping[str, object]) -> bool:
    """Emit ``payload`` when a machine-readable format was requested."""

    output_format = _output_format(args)
    if output_format == "json":
        _emit_json(payload)
        return True
    if output_format == "yaml":
        _emit_yaml(payload)
        return True
    return False


def _emit_validation(args: argparse.Namespace, command: str, report: ValidationReport) -> int:
    exit_code = ExitCode.SUCCESS if report.valid else ExitCode.VALIDATION_FAILED
    payload: dict[str, object] = {"command": command, **report.to_dict()}
    if _emit_structured(args, payload):
        return int(exit_code)

    renderer = _get_renderer(args)
    for finding in report.findings:
        renderer.finding(finding)
    summary = (
        f"{len(report.errors)} error(s), {len(report.warnings)} warning(s), "
        f"{len(report.info)} info across {len(report.files)} file(s)"
    )
    renderer.text(f"{'valid' if report.valid else 'invalid'}: {summary}")
    if not report.valid and not renderer.verbose:
        renderer.next_steps([f"backlog {command} --verbose  # show fix hints"])
    return int(exit_code)


def _render_dashboard(renderer: CLIRenderer, dashboard: Mapping[str, Any]) -> None:
    metrics = dashboard["metrics"]
    renderer.heading("Backlog dashboard")
    renderer.kv("Items", metrics["total_items"])
    renderer.kv(
        "Status",
        f"{metrics['complete']} complete, {metrics['in_progress']} in progress, "
        f"{metrics['blocked']} blocked, {metrics['pending']} pending",
    )
    velocity = dashboard["velocity"]
    renderer.kv("Velocity", f"{velocity['last_7_days']:.2f}/day ({velocity['trend']})")

    category_rows = [
        [
            category["id"],
            str(category["done"]),
            str(category["total"]),
            f"{category['progress']:.0%}",
        ]
        for category in dashboard["categories"]
    ]
    renderer.table(["CATEGORY", "DONE", "TOTAL", "PROGRESS"], category_rows, title="Categories:")
    agent_rows = [
        [name, str(load["assigned"]), str(load["done"])]
        for name, load in sorted(dashboard["agents"].items())
    ]
    renderer.table(["AGENT", "ASSIGNED", "DONE"], agent_rows, title="Agents:")
    blockers = dashboard["blockers"]
    if blockers:
        renderer.section(f"Blocked ({len(blockers)}):")
        renderer.items(
            [
                f"{entry['item_id']} <- {', '.join(entry['blocked_by']) or '(marked blocked)'}"
                for entry in blockers
            ]
        )


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Retrieve or create a CLI renderer from the parsed namespace."""

    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _plain(value: object) -> object:
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _format_minutes(minutes: int) -> str:
    hours, remainder = divmod(minutes, 60)
    if hours and remainder:
        return f"{hours}h{remainder}m"
    if hours:
        return f"{hours}h"
    return f"{remainder}m"


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _build_context(args: argparse.Namespace) -> RunContext:
    config = _load_effective_config(args)
    settings = EngineSettings.from_config(config)
    return RunContext(
        config=config,
        settings=settings,
        session=BacklogSession(settings),
        run_id=new_run_id(),
    )


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))
    root = _backlog_root(args)

    overrides: dict[str, object] = {}
    if root is not None:
        overrides["paths.root"] = root.as_posix()

    try:
        return load_config(config_path, profile=profile, cli_overrides=overrides, search_dir=root)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc


def _backlog_root(args: argparse.Namespace) -> Path | None:
    raw = _optional_str(getattr(args, "root", None))
    if raw is None:
        return None
    candidate = Path(raw).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(
            f"backlog root is not a directory: {candidate}", exit_code=int(ExitCode.CONFIG_ERROR)
        )
    return candidate


def _output_format(args: argparse.Namespace) -> str:
    if _flag(args, "json"):
        return "json"
    raw = getattr(args, "output_format", "text")
    return raw if raw in OUTPUT_FORMATS else "text"


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}")
    return value


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=int(ExitCode.CONFIG_ERROR))
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(
            f"invalid {name}: value cannot be empty", exit_code=int(ExitCode.CONFIG_ERROR)
        )
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=int(ExitCode.CONFIG_ERROR))
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = [
    "CLIError",
    "OUTPUT_FORMATS",
    "RunContext",
    "build_parser",
    "run_cli",
]
