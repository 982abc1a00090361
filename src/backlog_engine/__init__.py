"""
backlog-engine — package root

File: src/backlog_engine/__init__.py

Purpose
- Validation and analytics engine for outline-document backlogs: work items grouped
  into categories and checkpoints, cross-file dependency graph, progress metrics.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
- Heavy submodules are imported by callers, not re-exported here.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
