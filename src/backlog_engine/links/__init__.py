"""Link auditing and backlink synchronisation for outline documents."""

from backlog_engine.links.auditor import (
    BrokenLink,
    BrokenLinkReason,
    LinkAuditResult,
    audit_links,
    iter_outline_files,
)
from backlog_engine.links.backlinks import (
    BacklinkSyncResult,
    BacklinkUpdate,
    UnresolvedBacklink,
    UnresolvedReason,
    sync_backlinks,
)
from backlog_engine.links.syntax import FileLink, iter_file_links

__all__ = [
    "BacklinkSyncResult",
    "BacklinkUpdate",
    "BrokenLink",
    "BrokenLinkReason",
    "FileLink",
    "LinkAuditResult",
    "UnresolvedBacklink",
    "UnresolvedReason",
    "audit_links",
    "iter_file_links",
    "iter_outline_files",
    "sync_backlinks",
]
