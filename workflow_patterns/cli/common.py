"""Common utilities and global state for the CLI.

Contains project directory management, config loading and the bridge from
Typer's sync commands into the async services.
This module should NOT import from the command modules to avoid circular imports.
"""
from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional, TypeVar

import typer
from rich.console import Console

from workflow_patterns.config import ConfigError, WorkflowConfig, load_config

T = TypeVar("T")

# ============================================================================
# Global State
# ============================================================================

# Global project directory override (set via --project flag)
_project_dir: Optional[str] = None

# Console singleton
_console: Optional[Console] = None


def get_project_dir() -> Optional[str]:
    """Get the project directory override if set."""
    return _project_dir


def set_project_dir(path: Optional[str]) -> None:
    """Set the project directory override."""
    global _project_dir
    _project_dir = path


def get_console() -> Console:
    """Get or create the console singleton."""
    global _console
    if _console is None:
        _console = Console()
    return _console


# ============================================================================
# Helpers
# ============================================================================


def load_workspace_config() -> WorkflowConfig:
    """
    Load config for the selected project directory.

    A broken config file is reported and ends the command with exit code 1.
    """
    try:
        return load_config(get_project_dir() or ".")
    except ConfigError as e:
        get_console().print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a service coroutine from a Typer command."""
    return asyncio.run(coro)
