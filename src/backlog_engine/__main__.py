"""Module entrypoint for ``python -m backlog_engine``."""

from __future__ import annotations

from backlog_engine.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
