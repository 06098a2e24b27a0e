"""
APScheduler v4 integration for ICP Miner.
"""

from __future__ import annotations

import os
import socket
from datetime import datetime, timedelta
from uuid import uuid4

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.sqlalchemy import SQLAlchemyDataStore
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from icpminer.core.config.models import AppConfig, ScheduleConfig, ScheduleType
from icpminer.core.logging import get_logger
from icpminer.core.scheduler.locks import LockManager, schedule_lock_name
from icpminer.persistence.db import get_session
from icpminer.persistence.models import ScheduledJob
from icpminer.persistence.repo import SiteRepository

logger = get_logger("scheduler")

DEFAULT_SCHEDULER_DB_URL = "sqlite+aiosqlite:///data/schedules.db"


async def execute_scheduled_job(job_name: str, holder_id: str, config: AppConfig | None = None) -> None:
    """Run one pool-mode mining invocation for every site of a scheduled job."""
    from icpminer.core.config.loader import load_app_config
    from icpminer.core.orchestrator.runner import MiningOptions, SitePool, run_mining

    config = config or load_app_config()

    with get_session() as session:
        stmt = select(ScheduledJob).where(ScheduledJob.name == job_name)
        job = session.execute(stmt).scalar_one_or_none()

        if job is None or not job.enabled:
            logger.warning("Scheduled job not found or disabled: %s", job_name)
            return

        sites = _coerce_sites(job.sites_json)
        if not sites:
            sites = [site.id for site in SiteRepository(session).get_all()]

        ttl_minutes = job.max_runtime_minutes or 60

    if not sites:
        logger.warning("No sites configured for scheduled job: %s", job_name)
        return

    lock_name = schedule_lock_name(job_name)
    with get_session() as session:
        locks = LockManager(session)
        removed = locks.cleanup_expired()
        if removed:
            logger.info("Removed %s expired run locks", removed)
        if not locks.acquire(lock_name, holder_id, ttl_minutes=ttl_minutes):
            logger.info("Lock held, skipping run for %s", job_name)
            return

    status = "COMPLETED"
    try:
        for site_id in sites:
            options = MiningOptions.from_config(config.mining, site_id=site_id)
            result = await run_mining(SitePool(site_id), options, config=config)
            if not result.success:
                status = "PARTIAL"
                logger.warning("Mining for site %s failed: %s", site_id, "; ".join(result.errors))
    except Exception:
        status = "FAILED"
        logger.exception("Scheduled job failed: %s", job_name)
        raise
    finally:
        _update_job_status(job_name, status)
        with get_session() as session:
            LockManager(session).release(lock_name, holder_id)


def _update_job_status(job_name: str, status: str) -> None:
    with get_session() as session:
        stmt = select(ScheduledJob).where(ScheduledJob.name == job_name)
        job = session.execute(stmt).scalar_one_or_none()
        if job is None:
            return

        job.last_run_at = datetime.utcnow()
        job.last_status = status


def _coerce_sites(sites_json: object | None) -> list[str]:
    if sites_json is None:
        return []

    if isinstance(sites_json, list):
        return [str(item).strip() for item in sites_json if str(item).strip()]

    if isinstance(sites_json, str):
        return [part.strip() for part in sites_json.split(",") if part.strip()]

    if isinstance(sites_json, dict):
        maybe = sites_json.get("sites")
        if isinstance(maybe, list):
            return [str(item).strip() for item in maybe if str(item).strip()]

    return []


def sync_jobs_from_config(schedules: list[ScheduleConfig], default_jitter_minutes: int = 0) -> int:
    """Upsert ScheduledJob rows from app.yaml schedules. Returns count written.

    Schedules without their own jitter get default_jitter_minutes.
    """
    written = 0
    with get_session() as session:
        for schedule in schedules:
            stmt = select(ScheduledJob).where(ScheduledJob.name == schedule.name)
            job = session.execute(stmt).scalar_one_or_none()
            if job is None:
                job = ScheduledJob(name=schedule.name)
                session.add(job)

            job.sites_json = list(schedule.sites)
            job.schedule_type = schedule.type.value
            job.time_of_day = schedule.time_of_day
            job.interval_minutes = schedule.interval_minutes
            job.cron_expression = schedule.cron
            job.timezone = schedule.timezone
            job.jitter_minutes = (
                schedule.jitter_minutes if schedule.jitter_minutes is not None else default_jitter_minutes
            )
            job.max_runtime_minutes = schedule.max_runtime_minutes
            written += 1
    return written


class SchedulerService:
    """APScheduler v4 integration for ICP Miner."""

    def __init__(self, db_url: str = DEFAULT_SCHEDULER_DB_URL, config: AppConfig | None = None) -> None:
        self.db_url = db_url
        self.config = config
        self._scheduler: AsyncScheduler | None = None
        self._holder_id = f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:8]}"

    async def start(self) -> None:
        """Start scheduler in foreground mode (blocking)."""
        engine = create_async_engine(self.db_url)
        data_store = SQLAlchemyDataStore(engine)

        async with AsyncScheduler(data_store) as scheduler:
            self._scheduler = scheduler
            await self._sync_schedules_from_db()
            await scheduler.run_until_stopped()

    async def _sync_schedules_from_db(self) -> None:
        """Read ScheduledJob table and add to APScheduler."""
        if self._scheduler is None:
            raise RuntimeError("Scheduler is not initialized")

        with get_session() as session:
            stmt = select(ScheduledJob).where(ScheduledJob.enabled.is_(True))
            jobs = session.execute(stmt).scalars().all()

        for job in jobs:
            trigger = self._build_trigger(job)
            max_jitter = None
            if job.jitter_minutes > 0:
                max_jitter = timedelta(minutes=job.jitter_minutes)

            await self._scheduler.add_schedule(
                execute_scheduled_job,
                trigger,
                id=job.name,
                args=[job.name, self._holder_id],
                conflict_policy=ConflictPolicy.replace,
                max_jitter=max_jitter,
            )
            logger.info("Scheduled %s (%s)", job.name, job.schedule_type)

    async def trigger_now(self, job_name: str) -> None:
        """Trigger a scheduled job to run immediately."""
        engine = create_async_engine(self.db_url)
        data_store = SQLAlchemyDataStore(engine)

        async with AsyncScheduler(data_store) as scheduler:
            run_id = f"run-now:{job_name}:{uuid4().hex[:8]}"

            async def _run_once(name: str) -> None:
                try:
                    await execute_scheduled_job(name, self._holder_id, self.config)
                finally:
                    await scheduler.stop()

            await scheduler.add_schedule(
                _run_once,
                DateTrigger(datetime.now().astimezone()),
                id=run_id,
                args=[job_name],
                conflict_policy=ConflictPolicy.replace,
            )

            await scheduler.run_until_stopped()

    def _build_trigger(self, job: ScheduledJob) -> CronTrigger | IntervalTrigger:
        """Convert ScheduledJob config to APScheduler trigger."""
        schedule_type = ScheduleType(job.schedule_type.lower())
        timezone = job.timezone

        if schedule_type in {ScheduleType.DAILY, ScheduleType.WEEKDAY}:
            hour, minute = _parse_time_of_day(job.time_of_day)
            day_of_week = "mon-fri" if schedule_type == ScheduleType.WEEKDAY else None
            return CronTrigger(hour=hour, minute=minute, day_of_week=day_of_week, timezone=timezone)

        if schedule_type == ScheduleType.HOURLY:
            return IntervalTrigger(hours=1)

        if schedule_type == ScheduleType.INTERVAL:
            if not job.interval_minutes or job.interval_minutes <= 0:
                raise ValueError(f"Missing interval_minutes for job {job.name}")
            return IntervalTrigger(minutes=job.interval_minutes)

        if not job.cron_expression:
            raise ValueError(f"Missing cron expression for job {job.name}")
        return CronTrigger.from_crontab(job.cron_expression, timezone=timezone)


def _parse_time_of_day(time_of_day: str | None) -> tuple[int, int]:
    if not time_of_day:
        raise ValueError("time_of_day is required for daily/weekday schedules")

    parts = time_of_day.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time format: {time_of_day}")

    hour = int(parts[0])
    minute = int(parts[1])

    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ValueError(f"Invalid time value: {time_of_day}")

    return hour, minute
