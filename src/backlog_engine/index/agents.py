"""Agent registry built from the agents directory."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from backlog_engine.config.settings import EngineSettings
from backlog_engine.constants import DOCUMENT_SUFFIX
from backlog_engine.domain.ids import slugify, split_agent_ref
from backlog_engine.outline.parser import read_outline

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AgentRegistry:
    """
    Known agents and their sections.

    ``<name>.org`` defines agent ``name``; each heading inside it defines
    ``name:<section>`` where the section is the heading's ``CUSTOM_ID`` or its
    slugified title.
    """

    agents: Mapping[str, Path] = field(default_factory=dict)
    sections: Mapping[tuple[str, str], Path] = field(default_factory=dict)

    @classmethod
    def build(cls, settings: EngineSettings) -> AgentRegistry:
        agents_dir = settings.agents_dir
        if not agents_dir.is_dir():
            _logger.debug("agent_registry_missing", agents_dir=agents_dir.as_posix())
            return cls()

        agents: dict[str, Path] = {}
        sections: dict[tuple[str, str], Path] = {}
        for path in sorted(agents_dir.glob(f"*{DOCUMENT_SUFFIX}")):
            if path.name == settings.registry_index or not path.is_file():
                continue
            name = path.stem
            agents[name] = path
            document = read_outline(path, keywords=settings.status_keywords)
            for heading in document.headings:
                section = heading.property(settings.properties.custom_id) or slugify(
                    heading.title
                )
                if section:
                    sections.setdefault((name, section), path)

        _logger.debug("agent_registry_built", agents=len(agents), sections=len(sections))
        return cls(agents=agents, sections=sections)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self.agents))

    def resolve(self, ref: str) -> Path | None:
        """Resolve ``name``, ``name:section`` or a bare section name to its defining file."""

        name, section = split_agent_ref(ref)
        if not name:
            return None
        if section is not None:
            return self.sections.get((name, section))
        if name in self.agents:
            return self.agents[name]
        for (_agent, agent_section), path in sorted(self.sections.items()):
            if agent_section == name:
                return path
        return None

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, str) and self.resolve(ref) is not None

    def __len__(self) -> int:
        return len(self.agents)


__all__ = ["AgentRegistry"]
