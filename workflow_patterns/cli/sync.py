"""Sync commands: sync, enable-sync, disable-sync, stats.

These are registered as top-level commands on the main app.
Service modules are imported inside the commands to keep startup light.
"""
from __future__ import annotations

import typer
from rich.panel import Panel
from rich.table import Table

from workflow_patterns.cli.common import get_console, load_workspace_config, run_async

console = get_console()


def sync_command(
    push: bool = typer.Option(
        False,
        "--push",
        help="Push local patterns to the registry",
    ),
    pull: bool = typer.Option(
        False,
        "--pull",
        help="Pull community patterns from the registry",
    ),
    solutions: bool = typer.Option(
        False,
        "--solutions",
        help="Include solution patterns",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview without changing the registry or the local store",
    ),
) -> None:
    """
    Sync patterns with the community registry.

    Without --push or --pull both directions run, push first. Fixes and
    blueprints are always included; --solutions adds solution patterns.

    Example:
        workflow-patterns sync --push
        workflow-patterns sync --pull --solutions
        workflow-patterns sync --dry-run
    """
    from workflow_patterns.patterns.models import PatternKind
    from workflow_patterns.sync.service import LEARNING_KINDS, SyncService

    config = load_workspace_config()
    service = SyncService(config=config)

    if not run_async(service.contributor.is_sync_enabled()):
        console.print("[yellow]Sync is not enabled.[/yellow]")
        console.print("[dim]Run 'workflow-patterns enable-sync' to share anonymized patterns.[/dim]")
        raise typer.Exit(0)

    kinds = LEARNING_KINDS + ((PatternKind.SOLUTION,) if solutions else ())
    do_push = push or not pull
    do_pull = pull or not push

    if dry_run:
        console.print("[yellow]DRY-RUN: nothing will be changed[/yellow]")

    failed = False

    if do_push:
        console.print("[cyan]Pushing patterns...[/cyan]")
        summary = run_async(service.push(dry_run=dry_run, kinds=kinds))
        ready = ", ".join(f"{count} {kind.directory}" for kind, count in summary.ready.items())
        console.print(f"  Ready to push: {ready}")
        if summary.blocked:
            console.print(
                f"  [yellow]Blocked {summary.blocked} pattern(s) containing PII:[/yellow] "
                + ", ".join(summary.blocked_ids)
            )
        if summary.rate_limited:
            console.print("  [red]Rate limit exceeded[/red]")
            console.print(f"  Try again in {summary.retry_in}")
            failed = True
        elif summary.error:
            console.print(f"  [red]Registry error: {summary.error}[/red]")
            failed = True
        elif dry_run:
            console.print("  [yellow][DRY-RUN] Would push patterns to registry[/yellow]")
        elif summary.total_ready == 0:
            console.print("  [yellow]No patterns to push[/yellow]")
        else:
            console.print(f"  [green]Pushed {summary.pushed} pattern(s)[/green]")
            if summary.skipped:
                console.print(f"  [dim]({summary.skipped} already existed)[/dim]")
            for err in summary.errors:
                console.print(f"  [dim]- {err}[/dim]")
            if summary.rate_limit_remaining is not None:
                console.print(f"  [dim]Rate limit: {summary.rate_limit_remaining} remaining[/dim]")

    if do_pull and not failed:
        console.print("[cyan]Pulling patterns...[/cyan]")
        pulled = run_async(service.pull(dry_run=dry_run, kinds=kinds))
        if pulled.rate_limited:
            console.print("  [red]Rate limit exceeded[/red]")
            console.print(f"  Try again in {pulled.retry_in}")
            failed = True
        elif pulled.error:
            console.print(f"  [red]Registry error: {pulled.error}[/red]")
            failed = True
        elif pulled.received == 0:
            console.print("  [dim]No new patterns to pull[/dim]")
        else:
            verb = "Would save" if dry_run else "Pulled"
            console.print(
                f"  [green]{verb} {pulled.saved} pattern(s)[/green] "
                f"[dim]({pulled.skipped} already present, {pulled.failed} invalid)[/dim]"
            )

    if failed:
        raise typer.Exit(1)
    console.print("[green]Sync complete![/green]")


def enable_sync_command() -> None:
    """Opt in to sharing anonymized patterns."""
    from workflow_patterns.contributor import ContributorManager

    result = run_async(ContributorManager(config=load_workspace_config()).enable_sync())
    if not result.success:
        console.print(f"[red]Failed to enable sync: {result.error}[/red]")
        raise typer.Exit(1)
    console.print("[green]Sync enabled.[/green]")
    console.print("[dim]Your anonymized patterns can now be shared with the community.[/dim]")


def disable_sync_command() -> None:
    """Stop sharing patterns."""
    from workflow_patterns.contributor import ContributorManager

    result = run_async(ContributorManager(config=load_workspace_config()).disable_sync())
    if not result.success:
        console.print(f"[red]Failed to disable sync: {result.error}[/red]")
        raise typer.Exit(1)
    console.print("[green]Sync disabled.[/green]")


def stats_command() -> None:
    """
    Show pattern library statistics.

    Example:
        workflow-patterns stats
    """
    from workflow_patterns.contributor import ContributorManager
    from workflow_patterns.patterns.models import PatternKind
    from workflow_patterns.patterns.store import PatternStore

    config = load_workspace_config()
    store = PatternStore(config=config)
    stats = run_async(store.get_stats())
    sync_enabled = run_async(ContributorManager(config=config).is_sync_enabled())

    table = Table(title="Pattern Library")
    table.add_column("Kind", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Deprecated", justify="right", style="yellow")
    table.add_column("Private", justify="right", style="dim")
    table.add_column("Synced", justify="right", style="green")
    table.add_column("Invalid", justify="right", style="red")

    for kind in PatternKind:
        kind_stats = stats.for_kind(kind)
        table.add_row(
            kind.directory,
            str(kind_stats.total),
            str(kind_stats.deprecated),
            str(kind_stats.private),
            str(kind_stats.synced),
            str(kind_stats.invalid),
        )

    console.print(table)
    console.print(
        Panel(
            f"[bold]Total patterns:[/bold] {stats.total}\n"
            f"[bold]Sync:[/bold] {'enabled' if sync_enabled else 'disabled'}",
            border_style="cyan",
        )
    )

    for error in store.get_validation_errors():
        console.print(f"[red]Invalid {error.kind.value}[/red] {error.file}: {error.error}")
