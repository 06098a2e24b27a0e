"""
SQLAlchemy ORM models for ICP Miner.

Defines the complete database schema including:
- Sites: Tenants owning search profiles
- SearchQueries: Saved person search criteria
- MiningProfiles: Per-ICP scan progress (the resumable checkpoint)
- AuditEvents: Append-only workflow execution log
- ScheduledJobs: Scheduler state
- RunLocks: Overlap protection
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=None,
        onupdate=datetime.utcnow,
        nullable=True,
    )


# =============================================================================
# Site Model
# =============================================================================


class Site(Base, TimestampMixin):
    """Tenant site owning search profiles."""

    __tablename__ = "sites"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    profiles: Mapped[list["MiningProfile"]] = relationship(
        "MiningProfile",
        back_populates="site",
    )

    def __repr__(self) -> str:
        return f"<Site(id='{self.id}', user_id='{self.user_id}')>"


# =============================================================================
# Search Query Model
# =============================================================================


class SearchQuery(Base, TimestampMixin):
    """Saved person search criteria sent to the Finder API."""

    __tablename__ = "search_queries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    site_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("sites.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Request body merged with page/page_size on every search call
    query: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<SearchQuery(id='{self.id}', name='{self.name}')>"


# =============================================================================
# Mining Profile Model
# =============================================================================


class MiningProfile(Base, TimestampMixin):
    """Ideal Client Profile mining record and its persisted scan checkpoint.

    The checkpoint is the (current_page, processed_targets, found_matches,
    total_targets) tuple. Counters only ever grow; current_page never
    moves backwards.
    """

    __tablename__ = "icp_mining"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    search_query_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("search_queries.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    site_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
    )

    # Checkpoint
    total_targets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed_targets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    found_matches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_page: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Errors
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_progress_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Bumped on every store write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    site: Mapped["Site"] = relationship("Site", back_populates="profiles")
    search_query: Mapped["SearchQuery"] = relationship("SearchQuery")

    __table_args__ = (
        Index("ix_icp_mining_site_status", "site_id", "status"),
    )

    @property
    def remaining_targets(self) -> int | None:
        """Targets left to process, None while the total is unknown."""
        if self.total_targets is None:
            return None
        return max(self.total_targets - (self.processed_targets or 0), 0)

    def __repr__(self) -> str:
        return (
            f"<MiningProfile(id='{self.id}', status='{self.status}', "
            f"page={self.current_page}, processed={self.processed_targets}/{self.total_targets})>"
        )


# =============================================================================
# Audit Event Model
# =============================================================================


class AuditEvent(Base):
    """Append-only workflow execution log entry."""

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workflow_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    workflow_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    input: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    output: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditEvent(id={self.id}, workflow='{self.workflow_id}', status='{self.status}')>"


# =============================================================================
# Scheduled Job Model
# =============================================================================


class ScheduledJob(Base, TimestampMixin):
    """Scheduler job state (mirrors APScheduler for visibility)."""

    __tablename__ = "scheduled_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Configuration
    sites_json: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    schedule_type: Mapped[str] = mapped_column(String(50), nullable=False, default="hourly")
    time_of_day: Mapped[str | None] = mapped_column(String(10), nullable=True)  # HH:MM
    interval_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cron_expression: Mapped[str | None] = mapped_column(String(100), nullable=True)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    jitter_minutes: Mapped[int] = mapped_column(Integer, default=0)

    max_runtime_minutes: Mapped[int] = mapped_column(Integer, default=60)

    # Execution history
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<ScheduledJob(id={self.id}, name='{self.name}', enabled={self.enabled})>"


# =============================================================================
# Lock Model (for overlap protection)
# =============================================================================


class RunLock(Base):
    """Lock preventing overlapping runs of the same job or profile."""

    __tablename__ = "run_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    holder_id: Mapped[str] = mapped_column(String(100), nullable=False)  # Process/run identifier

    def __repr__(self) -> str:
        return f"<RunLock(name='{self.lock_name}', holder='{self.holder_id}')>"
