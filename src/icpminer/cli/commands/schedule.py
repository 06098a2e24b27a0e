"""
Schedule management commands.
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
    help="Manage scheduled mining jobs",
    no_args_is_help=True,
)


@app.command("list")
def list_schedules() -> None:
    """List all configured schedules."""
    from sqlalchemy import select

    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.models import ScheduledJob

    bootstrap(with_logging=False)

    with get_session() as session:
        stmt = select(ScheduledJob).order_by(ScheduledJob.name)
        jobs = session.execute(stmt).scalars().all()

        if not jobs:
            console.print("[dim]No schedules configured.[/dim]")
            console.print("Add one with: [yellow]icpminer schedule add[/yellow]")
            return

        table = Table(title="Scheduled Jobs", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Schedule")
        table.add_column("Sites")
        table.add_column("Last Run")
        table.add_column("Last Status")

        for job in jobs:
            status = "[green]OK Enabled[/green]" if job.enabled else "[red]x Disabled[/red]"

            schedule_desc = job.schedule_type
            if job.time_of_day:
                schedule_desc += f" @ {job.time_of_day}"
            if job.interval_minutes and job.schedule_type == "interval":
                schedule_desc = f"every {job.interval_minutes}m"
            if job.cron_expression:
                schedule_desc = f"cron: {job.cron_expression}"

            sites = job.sites_json or []
            sites_str = ", ".join(sites[:3])
            if len(sites) > 3:
                sites_str += f" (+{len(sites) - 3})"
            if not sites:
                sites_str = "[dim]all[/dim]"

            last_run = job.last_run_at.strftime("%Y-%m-%d %H:%M") if job.last_run_at else "[dim]Never[/dim]"

            table.add_row(
                job.name,
                status,
                schedule_desc,
                sites_str,
                last_run,
                job.last_status or "[dim]-[/dim]",
            )

        console.print(table)


@app.command("add")
def add_schedule(
    name: str = typer.Argument(..., help="Schedule name"),
    sites: Optional[str] = typer.Option(
        None,
        "--sites",
        "-s",
        help="Comma-separated site IDs (default: all)",
    ),
    daily: Optional[str] = typer.Option(None, "--daily", help="Run daily at HH:MM (e.g., '06:15')"),
    weekday: Optional[str] = typer.Option(None, "--weekday", help="Run weekdays at HH:MM"),
    hourly: bool = typer.Option(False, "--hourly", help="Run every hour"),
    every: Optional[int] = typer.Option(None, "--every", help="Run every N minutes", min=1),
    cron: Optional[str] = typer.Option(None, "--cron", help="Cron expression"),
    jitter: int = typer.Option(5, "--jitter", help="Jitter window in minutes"),
    timezone: str = typer.Option("UTC", "--timezone", "-tz", help="Timezone for schedule"),
) -> None:
    """Add a new scheduled mining job.

    Each run mines one profile per site in pool mode.

    Examples:
        icpminer schedule add morning --sites acme,globex --daily 06:15
        icpminer schedule add steady --every 30 --jitter 2
    """
    from sqlalchemy import select

    from icpminer.cli.runtime import bootstrap
    from icpminer.core.config import ScheduleType
    from icpminer.core.scheduler.service import _parse_time_of_day
    from icpminer.persistence.db import get_session
    from icpminer.persistence.models import ScheduledJob

    chosen = [bool(daily), bool(weekday), hourly, every is not None, bool(cron)]
    if sum(chosen) != 1:
        err_console.print("[red]Specify exactly one of: --daily, --weekday, --hourly, --every, --cron[/red]")
        raise typer.Exit(1)

    time_of_day = None
    if daily:
        schedule_type, time_of_day = ScheduleType.DAILY, daily
    elif weekday:
        schedule_type, time_of_day = ScheduleType.WEEKDAY, weekday
    elif hourly:
        schedule_type = ScheduleType.HOURLY
    elif every is not None:
        schedule_type = ScheduleType.INTERVAL
    else:
        schedule_type = ScheduleType.CRON

    if time_of_day:
        try:
            _parse_time_of_day(time_of_day)
        except ValueError as e:
            err_console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    site_list = [s.strip() for s in sites.split(",") if s.strip()] if sites else []

    bootstrap(with_logging=False)

    with get_session() as session:
        stmt = select(ScheduledJob).where(ScheduledJob.name == name)
        if session.execute(stmt).scalar_one_or_none():
            err_console.print(f"[red]Schedule already exists:[/red] {name}")
            raise typer.Exit(1)

        session.add(ScheduledJob(
            name=name,
            enabled=True,
            sites_json=site_list or None,
            schedule_type=schedule_type.value,
            time_of_day=time_of_day,
            interval_minutes=every,
            cron_expression=cron,
            timezone=timezone,
            jitter_minutes=jitter,
        ))

    console.print(f"[green]OK[/green] Created schedule: {name}")
    console.print(f"[dim]Type:[/dim] {schedule_type.value}")
    if time_of_day:
        console.print(f"[dim]Time:[/dim] {time_of_day} ({timezone})")
    console.print(f"[dim]Jitter:[/dim] ±{jitter} minutes")
    console.print(f"[dim]Sites:[/dim] {', '.join(site_list) if site_list else 'all'}")


@app.command("remove")
def remove_schedule(
    name: str = typer.Argument(..., help="Schedule name"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete a schedule."""
    from sqlalchemy import select

    from icpminer.cli.runtime import bootstrap
    from icpminer.persistence.db import get_session
    from icpminer.persistence.models import ScheduledJob

    if not force and not typer.confirm(f"Delete schedule '{name}'?"):
        raise typer.Abort()

    bootstrap(with_logging=False)

    with get_session() as session:
        stmt = select(ScheduledJob).where(ScheduledJob.name == name)
        job = session.execute(stmt).scalar_one_or_none()

        if not job:
            err_console.print(f"[red]Schedule not found:[/red] {name}")
            raise typer.Exit(1)

        session.delete(job)

    console.print(f"[red]x[/red] Deleted schedule: {name}")


@app.command("run-now")
def run_schedule_now(
    name: str = typer.Argument(..., help="Schedule name"),
) -> None:
    """Trigger a scheduled job to run immediately."""
    from sqlalchemy import select

    from icpminer.cli.runtime import bootstrap
    from icpminer.core.scheduler import SchedulerService
    from icpminer.persistence.db import get_session
    from icpminer.persistence.models import ScheduledJob

    config = bootstrap()

    with get_session() as session:
        stmt = select(ScheduledJob).where(ScheduledJob.name == name)
        if session.execute(stmt).scalar_one_or_none() is None:
            err_console.print(f"[red]Schedule not found:[/red] {name}")
            raise typer.Exit(1)

    console.print(f"[bold]Triggering schedule:[/bold] {name}")

    asyncio.run(SchedulerService(config=config).trigger_now(name))


@app.command("start")
def start_scheduler() -> None:
    """Start the scheduler service.

    Schedules from app.yaml are synced into the database first. Runs as a
    foreground process; use Ctrl+C to stop.
    """
    from icpminer.cli.runtime import bootstrap
    from icpminer.core.scheduler import SchedulerService, sync_jobs_from_config

    config = bootstrap()

    if not config.scheduler.enabled:
        err_console.print("[yellow]Scheduler is disabled in configuration[/yellow]")
        raise typer.Exit(1)

    synced = sync_jobs_from_config(
        config.scheduler.schedules,
        default_jitter_minutes=config.scheduler.default_jitter_minutes,
    )
    if synced:
        console.print(f"[dim]Synced {synced} schedule(s) from configuration[/dim]")

    console.print("[bold]Starting scheduler service...[/bold]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    asyncio.run(SchedulerService(config=config).start())
