"""Property extraction from parsed outline headings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from backlog_engine.config.settings import PropertyNames
from backlog_engine.domain.ids import parse_effort_minutes
from backlog_engine.domain.models import PropertyMap
from backlog_engine.outline.parser import OutlineHeading


@dataclass(frozen=True, slots=True)
class ExtractedProperties:
    custom_id: str | None
    agent: str | None
    effort: str | None
    priority: str | None
    depends: tuple[str, ...]
    blocks: tuple[str, ...]
    properties: PropertyMap
    closed_time: datetime | None


def parse_ref_list(raw: str | None) -> tuple[str, ...]:
    """Split a comma-separated reference list; blanks are dropped."""

    if raw is None:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def parse_effort(raw: str | None) -> int | None:
    """Return the effort in minutes for ``2h`` / ``30m``; anything else is ``None``."""

    return parse_effort_minutes(raw)


def extract_properties(heading: OutlineHeading, names: PropertyNames) -> ExtractedProperties:
    properties = PropertyMap((item.key, item.value) for item in heading.properties)
    return ExtractedProperties(
        custom_id=properties.get(names.custom_id),
        agent=properties.get(names.agent),
        effort=properties.get(names.effort),
        priority=properties.get(names.priority),
        depends=parse_ref_list(properties.get(names.depends)),
        blocks=parse_ref_list(properties.get(names.blocks)),
        properties=properties,
        closed_time=heading.closed,
    )


__all__ = ["ExtractedProperties", "extract_properties", "parse_effort", "parse_ref_list"]
