"""Contributor identity commands."""
from __future__ import annotations

import typer
from rich.panel import Panel

from workflow_patterns.cli.common import get_console, load_workspace_config, run_async

contributor_app = typer.Typer(
    name="contributor",
    help="Anonymous contributor identity",
    no_args_is_help=True,
)

console = get_console()


@contributor_app.command("show")
def show_command() -> None:
    """Show the contributor id and opt-in settings."""
    from workflow_patterns.contributor import ContributorManager

    result = run_async(ContributorManager(config=load_workspace_config()).get_config())
    if not result.success or result.data is None:
        console.print(f"[dim]No contributor ID yet ({result.error}).[/dim]")
        return

    record = result.data
    lines = [
        f"[bold]ID:[/bold] {record.id}",
        f"[bold]Created:[/bold] {record.created_at}",
        f"[bold]Sync:[/bold] {'enabled' if record.sync_opt_in else 'disabled'}",
        f"[bold]Telemetry:[/bold] {'enabled' if record.telemetry_enabled else 'disabled'}",
    ]
    if record.sync_enabled_at:
        lines.append(f"[bold]Sync enabled at:[/bold] {record.sync_enabled_at}")

    console.print(Panel("\n".join(lines), title="Contributor", border_style="cyan"))


@contributor_app.command("reset")
def reset_command(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Confirm replacing the contributor ID",
    ),
) -> None:
    """
    Replace the contributor ID with a new one.

    Patterns already pushed stay attributed to the old ID.

    Example:
        workflow-patterns contributor reset --yes
    """
    from workflow_patterns.contributor import ContributorManager

    if not yes:
        console.print("[red]Resetting the contributor ID requires --yes[/red]")
        raise typer.Exit(1)

    result = run_async(ContributorManager(config=load_workspace_config()).reset_id(confirm=True))
    if not result.success or result.data is None:
        console.print(f"[red]Failed to reset contributor ID: {result.error}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]New contributor ID:[/green] {result.data.id}")
