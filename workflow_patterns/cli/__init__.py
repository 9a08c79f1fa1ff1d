"""CLI package for workflow-patterns.

Modules:
    app.py          - Main Typer app, version callback, command registration
    sync.py         - sync, enable-sync, disable-sync, stats
    contributor.py  - contributor show/reset
    telemetry.py    - telemetry enable/disable/status
    common.py       - Shared helpers (get_console, get_project_dir, run_async)

Usage:
    from workflow_patterns.cli import app, cli_main
"""
from workflow_patterns.cli.app import app, cli_main

__all__ = ["app", "cli_main"]
