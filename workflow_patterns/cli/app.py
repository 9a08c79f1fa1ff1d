"""Top-level `workflow-patterns` command.

Holds the global options (--project, --version) and wires the sync,
contributor and telemetry commands onto one Typer app.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from workflow_patterns import __version__
from workflow_patterns.cli.common import get_console, set_project_dir

# Create Typer app
app = typer.Typer(
    name="workflow-patterns",
    help="Local pattern library with opt-in community sync",
    add_completion=False,
)

# Shared with the command modules
console = get_console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"workflow-patterns version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(
        None,
        "--project",
        "-p",
        help="Project directory to operate on (default: current directory)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Workflow Patterns - share fixes, blueprints and solutions.

    Patterns live under .workflow/patterns in the project directory. Use
    --project/-p to operate on a different project directory.
    """
    if project:
        project_path = Path(project)
        if not project_path.is_dir():
            console.print(f"[red]Error: Project directory not found: {project}[/red]")
            raise typer.Exit(1)
        set_project_dir(str(project_path.absolute()))
    else:
        set_project_dir(None)

    # Bare invocation prints help
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


# =========================================================================
# Command Registration
# =========================================================================

from workflow_patterns.cli.sync import (  # noqa: E402
    disable_sync_command,
    enable_sync_command,
    stats_command,
    sync_command,
)

app.command("sync")(sync_command)
app.command("enable-sync")(enable_sync_command)
app.command("disable-sync")(disable_sync_command)
app.command("stats")(stats_command)

from workflow_patterns.cli.contributor import contributor_app  # noqa: E402

app.add_typer(contributor_app, name="contributor")

from workflow_patterns.cli.telemetry import telemetry_app  # noqa: E402

app.add_typer(telemetry_app, name="telemetry")


def cli_main() -> None:
    """Entry point for the CLI."""
    app()


__all__ = ["app", "cli_main"]
