"""Turn parsed outline documents into backlog entities."""

from backlog_engine.ingestion.entities import DocumentEntities, build_entities
from backlog_engine.ingestion.properties import (
    ExtractedProperties,
    extract_properties,
    parse_effort,
    parse_ref_list,
)

__all__ = [
    "DocumentEntities",
    "ExtractedProperties",
    "build_entities",
    "extract_properties",
    "parse_effort",
    "parse_ref_list",
]
