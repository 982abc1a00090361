"""Plain-text rendering for ``backlog`` command output.

Findings print as ``FILE:LINE: [severity] rule: message`` so editors can jump to
them. Severity labels are colored only on a TTY, and never when ``NO_COLOR`` is
set or ``--no-color`` is passed.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Sequence

    from backlog_engine.domain.models import ValidationFinding

_ANSI: Final[dict[str, str]] = {
    "error": "\033[31m",
    "warning": "\033[33m",
    "info": "\033[36m",
}
_ANSI_RESET: Final[str] = "\033[0m"
_INDENT: Final[str] = "  "


class CLIRenderer:
    def __init__(self, *, color: bool, verbose: bool) -> None:
        self.color = color
        self.verbose = verbose

    def _emit(self, line: str = "") -> None:
        # Looked up per call so redirected stdout (tests, pipes) is honored.
        sys.stdout.write(line + "\n")

    def heading(self, text: str) -> None:
        self._emit(text)

    def text(self, line: str) -> None:
        self._emit(line)

    def kv(self, key: str, value: object) -> None:
        self._emit(f"{key}: {value}")

    def section(self, title: str) -> None:
        self._emit()
        self._emit(title)

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._emit(f"{_INDENT}{prefix}{entry}")

    def finding(self, finding: ValidationFinding) -> None:
        severity = finding.severity.value
        label = f"[{severity}]"
        if self.color and severity in _ANSI:
            label = f"{_ANSI[severity]}{label}{_ANSI_RESET}"
        self._emit(f"{finding.file}:{finding.line}: {label} {finding.rule}: {finding.message}")
        if self.verbose and finding.hint:
            self._emit(f"    hint: {finding.hint}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Print left-aligned columns; rows are truncated or padded to the header width."""

        if not rows:
            return
        grid = [list(headers)] + [
            [str(row[index]) if index < len(row) else "" for index in range(len(headers))]
            for row in rows
        ]
        widths = [max(len(line[index]) for line in grid) for index in range(len(headers))]

        if title:
            self.section(title)
        rule = [("-" * width) for width in widths]
        for line in (grid[0], rule, *grid[1:]):
            cells = "  ".join(cell.ljust(width) for cell, width in zip(line, widths))
            self._emit(_INDENT + cells.rstrip())

    def next_steps(self, steps: Sequence[str]) -> None:
        if steps:
            self.section("Next steps:")
            for step in steps:
                self._emit(f"{_INDENT}$ {step}")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Build a renderer, deciding color support once from flags, env and the TTY."""

    color = (
        not no_color
        and not os.environ.get("NO_COLOR")
        and hasattr(sys.stdout, "isatty")
        and sys.stdout.isatty()
    )
    return CLIRenderer(color=color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
