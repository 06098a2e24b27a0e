"""Database persistence layer."""

from .db import get_engine, get_session, get_sync_session, init_db
from .models import AuditEvent, Base, MiningProfile, RunLock, ScheduledJob, SearchQuery, Site
from .repo import AuditRepository, ProgressRepository, SearchQueryRepository, SiteRepository

__all__ = [
    "get_engine",
    "get_session",
    "get_sync_session",
    "init_db",
    "Base",
    "AuditEvent",
    "MiningProfile",
    "RunLock",
    "ScheduledJob",
    "SearchQuery",
    "Site",
    "AuditRepository",
    "ProgressRepository",
    "SearchQueryRepository",
    "SiteRepository",
]
