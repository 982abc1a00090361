"""File-link syntax: ``[[file:PATH]]`` / ``[[file:PATH::#TARGET]]`` with optional description."""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Final

_FILE_LINK_RE: Final[re.Pattern[str]] = re.compile(
    r"\[\[file:(?P<path>(?:(?!::)[^\]])+)(?:::(?P<search>[^\]]*))?\](?:\[(?P<desc>[^\]]*)\])?\]"
)


@dataclass(frozen=True, slots=True)
class FileLink:
    path: str
    target: str | None
    description: str | None
    column: int

    @property
    def raw_target(self) -> str:
        if self.target is None:
            return self.path
        return f"{self.path}::#{self.target}"

    def resolve(self, referencing_file: Path) -> Path:
        """Resolve the link path relative to the directory of ``referencing_file``."""

        candidate = Path(os.path.expandvars(self.path.strip())).expanduser()
        if not candidate.is_absolute():
            candidate = referencing_file.parent / candidate
        return Path(os.path.normpath(candidate))


def iter_file_links(text: str) -> Iterator[FileLink]:
    for match in _FILE_LINK_RE.finditer(text):
        search = match.group("search")
        target: str | None = None
        if search is not None and search.startswith("#") and len(search) > 1:
            target = search[1:].strip()
        yield FileLink(
            path=match.group("path"),
            target=target or None,
            description=match.group("desc"),
            column=match.start() + 1,
        )


__all__ = ["FileLink", "iter_file_links"]
