"""
ICP Miner CLI - Main entry point.

A terminal-first, resumable lead miner for Ideal Client Profiles with
scheduling and per-profile checkpoints.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from icpminer import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

# Force UTF-8 on Windows to avoid encoding issues
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            try:
                stream.reconfigure(encoding="utf-8", errors="replace")
            except (AttributeError, OSError):
                pass

console = Console(legacy_windows=False)
err_console = Console(stderr=True, legacy_windows=False)

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Resumable Ideal Client Profile lead miner",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: configs/app.yaml)",
        envvar="ICPMINER_CONFIG",
    ),
) -> None:
    """ICP Miner - page through person searches until enough leads are found."""
    if config is not None:
        os.environ["ICPMINER_CONFIG"] = str(config)


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import db, mine, profiles, schedule, sites  # noqa: E402

app.add_typer(mine.app, name="mine", help="Run mining invocations")
app.add_typer(profiles.app, name="profiles", help="Manage ICP mining profiles")
app.add_typer(sites.app, name="sites", help="Manage sites")
app.add_typer(sites.queries_app, name="queries", help="Manage saved search queries")
app.add_typer(schedule.app, name="schedule", help="Manage scheduled jobs")
app.add_typer(db.app, name="db", help="Database operations")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize ICP Miner database and configuration.

    Creates required directories, a default app.yaml and the
    database schema.
    """
    from rich.progress import Progress, SpinnerColumn, TextColumn

    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import init_db

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Creating directories...", total=None)

        for dir_path in (Path("configs"), Path("data"), Path("logs")):
            dir_path.mkdir(parents=True, exist_ok=True)

        progress.update(task, description="Creating default configuration...")

        app_config_path = Path(os.environ.get("ICPMINER_CONFIG", "configs/app.yaml"))
        if not app_config_path.exists() or force:
            _create_default_app_config(app_config_path)

        progress.update(task, description="Initializing database...")

        app_config = bootstrap(with_logging=False)
        app_config.ensure_directories()
        init_db(app_config.database.url)

        progress.update(task, description="Done!")

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - ICP Miner initialized successfully![/bold green]\n\n"
        "Created:\n"
        f"  - [cyan]{app_config_path}[/cyan] - Application configuration\n"
        "  - [cyan]data/[/cyan] - Database storage\n"
        "  - [cyan]logs/[/cyan] - Log files\n\n"
        "Next steps:\n"
        "  1. Register a site: [yellow]icpminer sites add <id> --user <user>[/yellow]\n"
        "  2. Save a query: [yellow]icpminer queries add --site <id> --file query.json[/yellow]\n"
        "  3. Add a profile: [yellow]icpminer profiles add --site <id> --query-id <qid>[/yellow]\n"
        "  4. Mine: [yellow]icpminer mine run --site <id>[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    default_config = """\
# ICP Miner Configuration

data_dir: data

# Database settings
database:
  url: ${DATABASE_URL:-sqlite:///data/icpminer.db}
  echo: false

# Logging settings
logging:
  level: INFO
  file: logs/icpminer.log
  json_format: true
  rich_console: true

# Finder person search API
finder:
  base_url: ${FINDER_BASE_URL:-http://localhost:3000}
  api_key: ${FINDER_API_KEY:-}
  search_path: /api/finder/person_role_search
  enrich_path: /api/finder/enrich_person
  timeout_seconds: 60
  max_retries: 3
  page_size: 10

# Per-invocation mining limits
mining:
  max_pages: 20
  page_size: 20
  target_matches: 40
  pool_limit: 50
  lock_ttl_minutes: 60

# Scheduler settings
scheduler:
  enabled: true
  default_jitter_minutes: 5
  schedules: []
"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config, encoding="utf-8")


# =============================================================================
# Status Command
# =============================================================================


@app.command()
def status(
    site: Optional[str] = typer.Option(None, "--site", "-s", help="Only count profiles of this site"),
) -> None:
    """Show mining profile counts by status."""
    from rich.table import Table

    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.repo import ProgressRepository, SiteRepository

    bootstrap(with_logging=False)

    console.print()
    console.print("[bold]ICP Miner Status[/bold]")
    console.print()

    with get_session() as session:
        sites = SiteRepository(session).get_all()
        counts = ProgressRepository(session).count_by_status(site_id=site)

    console.print(f"[dim]Sites:[/dim] {len(sites)}")

    if not counts:
        console.print("[dim]No mining profiles yet. Add one with:[/dim] icpminer profiles add")
        return

    table = Table(title="Profiles by Status", show_header=True, header_style="bold magenta")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")

    for status_name, count in sorted(counts.items()):
        table.add_row(status_name, str(count))

    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
