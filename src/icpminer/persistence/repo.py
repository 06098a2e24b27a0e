"""
Repository pattern for database operations.

Provides clean abstractions over the domain models, including the
progress store that the mining engine checkpoints through.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from icpminer.core.config.models import MiningStatus
from icpminer.core.errors import SiteNotFoundError

from .models import AuditEvent, MiningProfile, SearchQuery, Site

logger = logging.getLogger(__name__)

# Distinguishes "leave last_error alone" from "set last_error to None"
_UNSET: Any = object()

ACTIVE_STATUSES = (MiningStatus.PENDING.value, MiningStatus.RUNNING.value)


# =============================================================================
# Site Repository
# =============================================================================


class SiteRepository:
    """Repository for Site records, doubling as the site/identity resolver."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, site_id: str) -> Site | None:
        """Get site by ID."""
        return self.session.get(Site, site_id)

    def get_all(self) -> Sequence[Site]:
        """Get all sites."""
        stmt = select(Site).order_by(Site.id)
        return self.session.execute(stmt).scalars().all()

    def upsert(self, site_id: str, user_id: str | None = None, name: str | None = None) -> tuple[Site, bool]:
        """Create or update a site.

        Returns:
            Tuple of (site, created) where created is True if new
        """
        existing = self.get_by_id(site_id)

        if existing:
            if user_id is not None:
                existing.user_id = user_id
            if name is not None:
                existing.name = name
            self.session.flush()
            return existing, False

        site = Site(id=site_id, user_id=user_id, name=name)
        self.session.add(site)
        self.session.flush()
        return site, True

    def resolve_user_id(self, site_id: str) -> str:
        """Resolve the user scope owning a site.

        Raises:
            SiteNotFoundError: If the site is missing or has no owner
        """
        site = self.get_by_id(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        if not site.user_id:
            raise SiteNotFoundError(site_id, f"Site {site_id} has no owning user")
        return site.user_id


# =============================================================================
# Search Query Repository
# =============================================================================


class SearchQueryRepository:
    """Repository for saved person search criteria."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, search_query_id: str) -> SearchQuery | None:
        """Get search query by ID."""
        return self.session.get(SearchQuery, search_query_id)

    def create(
        self,
        query: dict[str, Any],
        site_id: str | None = None,
        name: str | None = None,
        search_query_id: str | None = None,
    ) -> SearchQuery:
        """Create a new search query."""
        search_query = SearchQuery(query=query, site_id=site_id, name=name)
        if search_query_id:
            search_query.id = search_query_id
        self.session.add(search_query)
        self.session.flush()
        return search_query

    def list_for_site(self, site_id: str | None = None) -> Sequence[SearchQuery]:
        """List saved queries, optionally for one site."""
        stmt = select(SearchQuery)
        if site_id is not None:
            stmt = stmt.where(SearchQuery.site_id == site_id)
        stmt = stmt.order_by(SearchQuery.created_at)
        return self.session.execute(stmt).scalars().all()


# =============================================================================
# Progress Repository
# =============================================================================


class ProgressRepository:
    """Durable progress store for mining profiles.

    Every write commits on its own so that each call is individually
    atomic and durable; callers never rely on cross-call transactions.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, profile_id: str) -> MiningProfile | None:
        """Get profile by ID, reloading any cached state."""
        stmt = (
            select(MiningProfile)
            .where(MiningProfile.id == profile_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def create(
        self,
        site_id: str,
        search_query_id: str,
        name: str | None = None,
        total_targets: int | None = None,
        profile_id: str | None = None,
    ) -> MiningProfile:
        """Register a new pending mining profile."""
        profile = MiningProfile(
            site_id=site_id,
            search_query_id=search_query_id,
            name=name,
            status=MiningStatus.PENDING.value,
            total_targets=total_targets,
            processed_targets=0,
            found_matches=0,
            current_page=0,
            errors=[],
        )
        if profile_id:
            profile.id = profile_id
        self.session.add(profile)
        self.session.commit()
        return profile

    def list_pending(self, limit: int = 50, site_id: str | None = None) -> Sequence[MiningProfile]:
        """List resumable (pending or running) profiles, oldest first."""
        limit = limit if limit > 0 else 50

        stmt = select(MiningProfile).where(MiningProfile.status.in_(ACTIVE_STATUSES))
        if site_id is not None:
            stmt = stmt.where(MiningProfile.site_id == site_id)
        stmt = stmt.order_by(MiningProfile.created_at.asc(), MiningProfile.id.asc())
        stmt = stmt.limit(limit).execution_options(populate_existing=True)

        return self.session.execute(stmt).scalars().all()

    def list_profiles(
        self,
        site_id: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> Sequence[MiningProfile]:
        """List profiles with filters."""
        stmt = select(MiningProfile)

        conditions = []
        if site_id is not None:
            conditions.append(MiningProfile.site_id == site_id)
        if status is not None:
            conditions.append(MiningProfile.status == status)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(MiningProfile.created_at.asc()).limit(limit)
        return self.session.execute(stmt).scalars().all()

    def mark_started(self, profile_id: str) -> bool:
        """Claim a profile for the current invocation (status -> running)."""
        profile = self._lock_row(profile_id)
        if profile is None:
            return False

        now = datetime.utcnow()
        profile.status = MiningStatus.RUNNING.value
        profile.started_at = now
        profile.last_progress_at = now
        profile.version += 1
        self.session.commit()
        return True

    def update_progress(
        self,
        profile_id: str,
        *,
        delta_processed: int = 0,
        delta_found: int = 0,
        current_page: int | None = None,
        total_targets: int | None = None,
        status: MiningStatus | str | None = None,
        append_error: str | None = None,
        last_error: str | None = _UNSET,
    ) -> MiningProfile | None:
        """Apply an incremental progress update.

        Counters are additive. current_page is positional but never moves
        backwards; increments to processed_targets are clamped to a known
        total, but a total below the stored count never lowers it. An
        appended error is pushed onto the error log and mirrored into
        last_error unless last_error is passed explicitly.

        Returns:
            The updated profile, or None if it does not exist
        """
        profile = self._lock_row(profile_id)
        if profile is None:
            logger.warning("Progress update for unknown profile %s ignored", profile_id)
            return None

        if total_targets is not None:
            profile.total_targets = total_targets

        previous = profile.processed_targets or 0
        processed = previous + max(delta_processed, 0)
        if profile.total_targets is not None:
            # Only the increment is clamped; the counter never goes down
            processed = min(processed, max(previous, profile.total_targets))
        profile.processed_targets = processed
        profile.found_matches = (profile.found_matches or 0) + max(delta_found, 0)

        if current_page is not None:
            if current_page >= (profile.current_page or 0):
                profile.current_page = current_page
            else:
                logger.warning(
                    "Ignoring current_page regression for %s: %s -> %s",
                    profile_id,
                    profile.current_page,
                    current_page,
                )

        if status is not None:
            profile.status = MiningStatus(status).value

        if append_error:
            entry = {"timestamp": datetime.utcnow().isoformat(), "message": append_error}
            # New list so the JSON column is flagged dirty
            profile.errors = [*(profile.errors or []), entry]
            profile.last_error = append_error

        if last_error is not _UNSET:
            profile.last_error = last_error

        profile.last_progress_at = datetime.utcnow()
        profile.version += 1
        self.session.commit()
        return profile

    def mark_completed(
        self,
        profile_id: str,
        *,
        failed: bool = False,
        last_error: str | None = None,
    ) -> bool:
        """Move a profile to its terminal state."""
        profile = self._lock_row(profile_id)
        if profile is None:
            return False

        profile.status = MiningStatus.FAILED.value if failed else MiningStatus.COMPLETED.value
        profile.finished_at = datetime.utcnow()
        profile.last_error = last_error
        profile.version += 1
        self.session.commit()
        return True

    def count_by_status(self, site_id: str | None = None) -> dict[str, int]:
        """Count profiles grouped by status."""
        stmt = select(
            MiningProfile.status,
            func.count(MiningProfile.id),
        ).group_by(MiningProfile.status)

        if site_id is not None:
            stmt = stmt.where(MiningProfile.site_id == site_id)

        result = self.session.execute(stmt).all()
        return {status: count for status, count in result}

    def _lock_row(self, profile_id: str) -> MiningProfile | None:
        stmt = (
            select(MiningProfile)
            .where(MiningProfile.id == profile_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()


# =============================================================================
# Audit Repository
# =============================================================================


class AuditRepository:
    """Repository for the append-only audit log."""

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        workflow_id: str,
        workflow_type: str,
        status: str,
        input: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append an event and commit it."""
        event = AuditEvent(
            workflow_id=workflow_id,
            workflow_type=workflow_type,
            status=status,
            input=input,
            output=output,
        )
        self.session.add(event)
        self.session.commit()
        return event

    def get_recent(
        self,
        workflow_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> Sequence[AuditEvent]:
        """Get recent events, newest first."""
        stmt = select(AuditEvent)

        if workflow_id is not None:
            stmt = stmt.where(AuditEvent.workflow_id == workflow_id)
        if status is not None:
            stmt = stmt.where(AuditEvent.status == status)

        stmt = stmt.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit)
        return self.session.execute(stmt).scalars().all()
