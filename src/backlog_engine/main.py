"""Process entrypoint and exit-code contract for the ``backlog`` command."""

from __future__ import annotations

import sys
import traceback
from collections.abc import Iterator, Sequence
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    VALIDATION_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and turn whatever escapes it into an ``ExitCode`` value."""

    try:
        from backlog_engine.ui.cli import run_cli

        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except Exception as exc:  # noqa: BLE001 - process boundary
        code = exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an exception, or anything in its cause chain, to an exit code.

    Configuration and input-location problems (bad config, missing backlog root,
    unreadable document) are user errors; everything else is internal.
    """

    from backlog_engine.config.loader import ConfigLoadError
    from backlog_engine.config.schema import ConfigValidationError
    from backlog_engine.index.snapshot import TaskRootError
    from backlog_engine.outline.parser import DocumentReadError

    user_errors = (ConfigLoadError, ConfigValidationError, TaskRootError, DocumentReadError)
    if any(isinstance(link, user_errors) for link in _cause_chain(exc)):
        return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _cause_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in set(ExitCode):
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]
