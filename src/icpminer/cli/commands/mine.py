"""
Mining commands.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run mining invocations",
    no_args_is_help=True,
)


@app.command("run")
def run_mine(
    profile: Optional[str] = typer.Option(
        None,
        "--profile",
        "-p",
        help="Mine this profile",
    ),
    site: Optional[str] = typer.Option(
        None,
        "--site",
        "-s",
        help="Mine the best pending profile of this site",
    ),
    max_pages: Optional[int] = typer.Option(
        None,
        "--max-pages",
        help="Provider fetches allowed in this invocation",
        min=1,
    ),
    page_size: Optional[int] = typer.Option(
        None,
        "--page-size",
        help="Requested page size",
        min=1,
    ),
    target: Optional[int] = typer.Option(
        None,
        "--target",
        "-t",
        help="Stop once this many matches are found",
        min=1,
    ),
    user: Optional[str] = typer.Option(
        None,
        "--user",
        "-u",
        help="Owning user (resolved from the site if omitted)",
    ),
) -> None:
    """Run one mining invocation.

    Processes at most one profile: the named one, or the best pending
    candidate of a site. Progress is checkpointed after every page.

    Examples:
        icpminer mine run --site acme --max-pages 5
        icpminer mine run --profile 3f2a... --target 10
    """
    from icpminer.cli.runtime import bootstrap
    from icpminer.core.orchestrator import MiningOptions, SingleProfile, SitePool, run_mining

    if (profile is None) == (site is None):
        err_console.print("[red]Specify exactly one of --profile or --site[/red]")
        raise typer.Exit(1)

    config = bootstrap()

    request = SingleProfile(profile) if profile else SitePool(site)  # type: ignore[arg-type]
    options = MiningOptions.from_config(
        config.mining,
        site_id=site,
        user_id=user,
        max_pages=max_pages,
        page_size=page_size,
        target_matches=target,
    )

    result = asyncio.run(run_mining(request, options, config=config))

    table = Table(title="Mining Run", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Profile", result.profile_id or "[dim]-[/dim]")
    table.add_row("Status", result.status.value if result.status else "[dim]-[/dim]")
    table.add_row("Processed", str(result.processed))
    table.add_row("Matches", str(result.found_matches))
    table.add_row("Total targets", str(result.total_targets) if result.total_targets is not None else "unknown")
    table.add_row("Budget exhausted", "yes" if result.budget_exhausted else "no")
    if result.skipped:
        table.add_row("Skipped", "[yellow]locked by another run[/yellow]")
    if result.duration_seconds is not None:
        table.add_row("Duration", f"{result.duration_seconds:.1f}s")

    console.print(table)

    for error in result.errors:
        err_console.print(f"[yellow]![/yellow] {error}")

    if not result.success:
        raise typer.Exit(1)

    if result.profile_id is None:
        console.print("[dim]No pending profiles to mine.[/dim]")
