"""
Mining profile commands.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Manage ICP mining profiles",
    no_args_is_help=True,
)

STATUS_STYLES = {
    "pending": "yellow",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
}


def _progress_text(processed: int, total: int | None) -> str:
    if total is None:
        return f"{processed}/?"
    return f"{processed}/{total}"


@app.command("list")
def list_profiles(
    site: Optional[str] = typer.Option(None, "--site", "-s", help="Filter by site"),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        help="Filter by status (pending, running, completed, failed)",
    ),
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum rows"),
) -> None:
    """List mining profiles."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.core.config import MiningStatus
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import ProgressRepository

    if status is not None:
        try:
            status = MiningStatus(status.lower()).value
        except ValueError:
            err_console.print(f"[red]Unknown status:[/red] {status}")
            raise typer.Exit(1)

    bootstrap(with_logging=False)

    with get_session() as session:
        profiles = ProgressRepository(session).list_profiles(site_id=site, status=status, limit=limit)

        if not profiles:
            console.print("[dim]No mining profiles found.[/dim]")
            return

        table = Table(title="ICP Mining Profiles", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Site")
        table.add_column("Status", justify="center")
        table.add_column("Processed", justify="right")
        table.add_column("Matches", justify="right")
        table.add_column("Page", justify="right")
        table.add_column("Last Progress")

        for profile in profiles:
            style = STATUS_STYLES.get(profile.status, "default")
            last_progress = (
                profile.last_progress_at.strftime("%Y-%m-%d %H:%M")
                if profile.last_progress_at
                else "[dim]Never[/dim]"
            )
            table.add_row(
                profile.id,
                profile.name or "[dim]-[/dim]",
                profile.site_id,
                f"[{style}]{profile.status}[/{style}]",
                _progress_text(profile.processed_targets, profile.total_targets),
                str(profile.found_matches),
                str(profile.current_page),
                last_progress,
            )

        console.print(table)


@app.command("show")
def show_profile(
    profile_id: str = typer.Argument(..., help="Profile ID"),
    errors: int = typer.Option(10, "--errors", "-e", help="Number of recent errors to show"),
) -> None:
    """Show a profile's checkpoint and recent errors."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import ProgressRepository

    bootstrap(with_logging=False)

    with get_session() as session:
        profile = ProgressRepository(session).get_by_id(profile_id)

        if profile is None:
            err_console.print(f"[red]Profile not found:[/red] {profile_id}")
            raise typer.Exit(1)

        style = STATUS_STYLES.get(profile.status, "default")
        remaining = profile.remaining_targets

        lines = [
            f"[bold]Name:[/bold] {profile.name or '-'}",
            f"[bold]Site:[/bold] {profile.site_id}",
            f"[bold]Search query:[/bold] {profile.search_query_id}",
            f"[bold]Status:[/bold] [{style}]{profile.status}[/{style}]",
            f"[bold]Processed:[/bold] {_progress_text(profile.processed_targets, profile.total_targets)}",
            f"[bold]Remaining:[/bold] {remaining if remaining is not None else 'unknown'}",
            f"[bold]Matches:[/bold] {profile.found_matches}",
            f"[bold]Current page:[/bold] {profile.current_page}",
            f"[bold]Started:[/bold] {profile.started_at or '-'}",
            f"[bold]Finished:[/bold] {profile.finished_at or '-'}",
            f"[bold]Version:[/bold] {profile.version}",
        ]
        if profile.last_error:
            lines.append(f"[bold]Last error:[/bold] [red]{profile.last_error}[/red]")

        console.print(Panel("\n".join(lines), title=f"[bold cyan]{profile.id}[/bold cyan]"))

        recent = (profile.errors or [])[-errors:] if errors > 0 else []
        if recent:
            table = Table(title="Recent Errors", show_header=True, header_style="bold magenta")
            table.add_column("Time", style="dim")
            table.add_column("Message")
            for entry in recent:
                table.add_row(str(entry.get("timestamp", "")), str(entry.get("message", "")))
            console.print(table)


@app.command("add")
def add_profile(
    site: str = typer.Option(..., "--site", "-s", help="Owning site"),
    query_id: str = typer.Option(..., "--query-id", "-q", help="Saved search query ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Profile name"),
) -> None:
    """Register a new pending mining profile."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import ProgressRepository, SearchQueryRepository, SiteRepository

    bootstrap(with_logging=False)

    with get_session() as session:
        if SiteRepository(session).get_by_id(site) is None:
            err_console.print(f"[red]Site not found:[/red] {site}")
            raise typer.Exit(1)
        if SearchQueryRepository(session).get_by_id(query_id) is None:
            err_console.print(f"[red]Search query not found:[/red] {query_id}")
            raise typer.Exit(1)

        profile = ProgressRepository(session).create(site_id=site, search_query_id=query_id, name=name)
        profile_id = profile.id

    console.print(f"[green]OK[/green] Created profile: {profile_id}")
