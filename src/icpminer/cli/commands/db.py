"""
Database management commands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent.parent / "persistence" / "migrations"


def _alembic_config():
    """Build the Alembic config in code; the package ships no alembic.ini."""
    from alembic.config import Config

    from icpminer.core.config.loader import load_app_config

    app_config = load_app_config()

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    alembic_cfg.set_main_option("sqlalchemy.url", app_config.database.url)
    return alembic_cfg


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(
        False,
        "--drop",
        help="Drop existing tables before creating",
    ),
) -> None:
    """Initialize the database schema.

    Creates all tables. Use --drop to reset the database.
    """
    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import drop_db, init_db

    config = bootstrap(with_logging=False)

    if drop_existing:
        if not typer.confirm("This will DELETE ALL DATA. Continue?", default=False):
            raise typer.Abort()

        console.print("[yellow]Dropping existing tables...[/yellow]")
        drop_db(config.database.url)

    console.print("Creating database schema...")
    init_db(config.database.url)

    console.print("[green]OK[/green] Database initialized")


@app.command("migrate")
def run_migrations(
    revision: str = typer.Option(
        "head",
        "--revision",
        "-r",
        help="Target revision (default: head)",
    ),
) -> None:
    """Run database migrations."""
    from alembic import command

    console.print(f"Running migrations to: {revision}")

    try:
        command.upgrade(_alembic_config(), revision)
        console.print("[green]OK[/green] Migrations complete")
    except Exception as e:
        err_console.print(f"[red]Migration failed:[/red] {e}")
        raise typer.Exit(1)


@app.command("current")
def show_current() -> None:
    """Show current database revision."""
    from alembic import command

    console.print("[bold]Current database revision:[/bold]")
    command.current(_alembic_config(), verbose=True)


@app.command("history")
def show_history() -> None:
    """Show migration history."""
    from alembic import command

    console.print("[bold]Migration history:[/bold]")
    command.history(_alembic_config(), indicate_current=True)
