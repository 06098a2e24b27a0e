"""
Site and saved search query commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import orjson
import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Manage sites",
    no_args_is_help=True,
)

queries_app = typer.Typer(
    help="Manage saved search queries",
    no_args_is_help=True,
)


@app.command("add")
def add_site(
    site_id: str = typer.Argument(..., help="Site ID"),
    user: str = typer.Option(..., "--user", "-u", help="Owning user ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
) -> None:
    """Create a site, or update its owner and name."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import SiteRepository

    bootstrap(with_logging=False)

    with get_session() as session:
        _, created = SiteRepository(session).upsert(site_id, user_id=user, name=name)

    verb = "Created" if created else "Updated"
    console.print(f"[green]OK[/green] {verb} site: {site_id}")


@app.command("list")
def list_sites() -> None:
    """List sites."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import SiteRepository

    bootstrap(with_logging=False)

    with get_session() as session:
        sites = SiteRepository(session).get_all()

        if not sites:
            console.print("[dim]No sites yet. Add one with:[/dim] icpminer sites add <id> --user <user>")
            return

        table = Table(title="Sites", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("User")
        table.add_column("Profiles", justify="right")

        for site in sites:
            table.add_row(site.id, site.name or "[dim]-[/dim]", site.user_id or "[red]none[/red]", str(len(site.profiles)))

        console.print(table)


@queries_app.command("add")
def add_query(
    site: str = typer.Option(..., "--site", "-s", help="Owning site"),
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="JSON file with the search request body",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Query name"),
) -> None:
    """Save a person search query from a JSON file."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import SearchQueryRepository, SiteRepository

    try:
        query = orjson.loads(file.read_bytes())
    except orjson.JSONDecodeError as e:
        err_console.print(f"[red]Invalid JSON in {file}:[/red] {e}")
        raise typer.Exit(1)

    if not isinstance(query, dict):
        err_console.print("[red]Query file must contain a JSON object[/red]")
        raise typer.Exit(1)

    bootstrap(with_logging=False)

    with get_session() as session:
        if SiteRepository(session).get_by_id(site) is None:
            err_console.print(f"[red]Site not found:[/red] {site}")
            raise typer.Exit(1)

        search_query = SearchQueryRepository(session).create(query, site_id=site, name=name or file.stem)
        query_id = search_query.id

    console.print(f"[green]OK[/green] Saved search query: {query_id}")


@queries_app.command("list")
def list_queries(
    site: Optional[str] = typer.Option(None, "--site", "-s", help="Filter by site"),
) -> None:
    """List saved search queries."""
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import SearchQueryRepository

    bootstrap(with_logging=False)

    with get_session() as session:
        queries = SearchQueryRepository(session).list_for_site(site)

        if not queries:
            console.print("[dim]No saved queries.[/dim]")
            return

        table = Table(title="Search Queries", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Site")
        table.add_column("Fields")

        for search_query in queries:
            table.add_row(
                search_query.id,
                search_query.name or "[dim]-[/dim]",
                search_query.site_id or "[dim]-[/dim]",
                ", ".join(sorted((search_query.query or {}).keys())),
            )

        console.print(table)
