"""Scheduler service - APScheduler integration and run locks."""

from .locks import LockManager, profile_lock_name, schedule_lock_name
from .service import SchedulerService, execute_scheduled_job, sync_jobs_from_config

__all__ = [
    "LockManager",
    "profile_lock_name",
    "schedule_lock_name",
    "SchedulerService",
    "execute_scheduled_job",
    "sync_jobs_from_config",
]
