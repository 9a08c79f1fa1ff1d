"""Telemetry opt-in commands."""
from __future__ import annotations

import typer
from rich.panel import Panel

from workflow_patterns.cli.common import get_console, load_workspace_config, run_async

telemetry_app = typer.Typer(
    name="telemetry",
    help="Anonymous pattern usage telemetry",
    no_args_is_help=True,
)

console = get_console()


@telemetry_app.command("enable")
def enable_command() -> None:
    """Record anonymous pattern usage events."""
    from workflow_patterns.contributor import ContributorManager

    result = run_async(ContributorManager(config=load_workspace_config()).enable_telemetry())
    if not result.success:
        console.print(f"[red]Failed to enable telemetry: {result.error}[/red]")
        raise typer.Exit(1)
    console.print("[green]Telemetry enabled.[/green]")


@telemetry_app.command("disable")
def disable_command() -> None:
    """Stop recording usage events. Queued events are kept until cleared."""
    from workflow_patterns.contributor import ContributorManager

    result = run_async(ContributorManager(config=load_workspace_config()).disable_telemetry())
    if not result.success:
        console.print(f"[red]Failed to disable telemetry: {result.error}[/red]")
        raise typer.Exit(1)
    console.print("[green]Telemetry disabled.[/green]")


@telemetry_app.command("status")
def status_command() -> None:
    """Show whether telemetry is on and how many events are queued."""
    from workflow_patterns.telemetry import TelemetryCollector

    collector = TelemetryCollector(config=load_workspace_config())
    enabled = run_async(collector.contributor.is_telemetry_enabled())
    stats = run_async(collector.get_stats())

    console.print(
        Panel(
            f"[bold]Telemetry:[/bold] {'enabled' if enabled else 'disabled'}\n"
            f"[bold]Pending events:[/bold] {stats.pending_events}\n"
            f"[bold]Total sent:[/bold] {stats.total_events_sent}\n"
            f"[bold]Last flush:[/bold] {stats.last_flush_at or 'never'}",
            title="Telemetry",
            border_style="cyan",
        )
    )
