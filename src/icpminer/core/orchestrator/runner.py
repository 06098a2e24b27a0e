"""
Mining dispatch orchestrator.

Coordinates one mining invocation: resolve the work item (a named
profile or the best candidate from a site's pool) → resolve the owning
user → lock the profile → run the engine → summarize.
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TYPE_CHECKING, Union
from uuid import uuid4

from icpminer.core.audit import AuditLog
from icpminer.core.config.models import AppConfig, MiningConfig, MiningStatus
from icpminer.core.errors import ProfileNotFoundError, SiteNotFoundError
from icpminer.core.finder.base import PageSearchProvider
from icpminer.core.finder.client import FinderClient
from icpminer.core.finder.page_search import FinderPageSearch, HttpEnricher
from icpminer.core.mining.engine import MiningEngine
from icpminer.core.mining.selector import remaining_targets, select_next_profile
from icpminer.core.scheduler.locks import LockManager, profile_lock_name
from icpminer.persistence.db import get_sync_session
from icpminer.persistence.models import MiningProfile
from icpminer.persistence.repo import ProgressRepository, SiteRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)


# =============================================================================
# Requests and Options
# =============================================================================


@dataclass(frozen=True)
class SingleProfile:
    """Mine one named profile."""

    profile_id: str


@dataclass(frozen=True)
class SitePool:
    """Mine the best pending profile of a site."""

    site_id: str


MiningRequest = Union[SingleProfile, SitePool]


@dataclass
class MiningOptions:
    """Per-invocation mining limits."""

    site_id: str | None = None
    user_id: str | None = None
    max_pages: int = 20
    page_size: int = 20
    target_matches: int = 40
    pool_limit: int = 50

    @classmethod
    def from_config(cls, config: MiningConfig, **overrides: Any) -> "MiningOptions":
        """Build options from config defaults, ignoring None overrides."""
        values: dict[str, Any] = {
            "max_pages": config.max_pages,
            "page_size": config.page_size,
            "target_matches": config.target_matches,
            "pool_limit": config.pool_limit,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class MiningRunResult:
    """Summary of one mining invocation."""

    success: bool = False
    profile_id: str | None = None
    processed: int = 0
    found_matches: int = 0
    total_targets: int | None = None
    status: MiningStatus | None = None
    budget_exhausted: bool = False
    skipped: bool = False

    errors: list[str] = field(default_factory=list)

    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "profile_id": self.profile_id,
            "processed": self.processed,
            "found_matches": self.found_matches,
            "total_targets": self.total_targets,
            "status": self.status.value if self.status else None,
            "budget_exhausted": self.budget_exhausted,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }


def default_holder_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:8]}"


# =============================================================================
# Runner
# =============================================================================


class MiningRunner:
    """Runs one mining invocation for a single profile or a site pool.

    Processes at most one profile per call. Only a missing profile or an
    unresolvable site make the invocation unsuccessful; page-level
    problems are absorbed into the profile's progress record.
    """

    def __init__(
        self,
        options: MiningOptions,
        *,
        session: Session | None = None,
        provider: PageSearchProvider | None = None,
        config: AppConfig | None = None,
        holder_id: str | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            options: Invocation limits and scope
            session: Database session (will create if not provided)
            provider: Page search provider (Finder-backed if not provided)
            config: Application config for provider and lock settings
            holder_id: Lock holder identity
        """
        self.options = options
        self.config = config or AppConfig()
        self._session = session
        self._owns_session = session is None
        self._provider = provider
        self._owns_provider = provider is None
        self.holder_id = holder_id or default_holder_id()

    def _create_provider(self, session: Session) -> PageSearchProvider:
        finder = self.config.finder
        client = FinderClient.from_config(finder)
        enricher = HttpEnricher(client, finder.enrich_path)
        return FinderPageSearch(client, session, enricher)

    async def run(self, request: MiningRequest) -> MiningRunResult:
        """Execute one mining invocation.

        Returns:
            MiningRunResult summary
        """
        result = MiningRunResult()

        if isinstance(request, SingleProfile):
            workflow_id = f"icp-mining-{request.profile_id}"
        else:
            workflow_id = f"icp-mining-batch-{request.site_id}"

        session = self._session or get_sync_session()
        audit = AuditLog(session)
        provider: PageSearchProvider | None = None

        audit.started(workflow_id, {"request": request, "options": self.options})

        try:
            store = ProgressRepository(session)

            candidates = self._resolve_candidates(store, request, result)
            if not candidates:
                result.success = True
                audit.completed(workflow_id, {"message": "No pending ICP mining profiles", **result.to_dict()})
                return result

            if isinstance(request, SingleProfile):
                current = MiningStatus(candidates[0].status)
                if current.is_terminal:
                    logger.info(f"Profile {request.profile_id} is already {current.value}, nothing to do")
                    result.success = True
                    result.profile_id = request.profile_id
                    result.status = current
                    audit.completed(workflow_id, {"message": f"Profile already {current.value}", **result.to_dict()})
                    return result
                site_id = self.options.site_id or candidates[0].site_id
            else:
                site_id = request.site_id
                audit.info(workflow_id, {"event": "pendingItems", "site_id": site_id, "count": len(candidates)})

            user_id = self.options.user_id or SiteRepository(session).resolve_user_id(site_id)

            locks = LockManager(session)
            profile = self._lock_next(locks, candidates)
            if profile is None:
                blocked = select_next_profile(candidates)
                result.success = True
                result.skipped = True
                result.profile_id = blocked.id
                result.status = MiningStatus(blocked.status)
                audit.info(workflow_id, {"message": "Profile locked by another run", **result.to_dict()})
                return result

            result.profile_id = profile.id
            if isinstance(request, SitePool):
                audit.info(
                    workflow_id,
                    {
                        "event": "selectedIcp",
                        "profile_id": profile.id,
                        "status": profile.status,
                        "remaining_targets": remaining_targets(profile),
                        "pool_size": len(candidates),
                    },
                )

            lock_name = profile_lock_name(profile.id)
            try:
                provider = self._provider or self._create_provider(session)
                engine = MiningEngine(
                    store,
                    provider,
                    audit,
                    default_page_size=self.config.finder.page_size,
                )
                outcome = await engine.run(
                    profile,
                    site_id=site_id,
                    user_id=user_id,
                    target_matches=self.options.target_matches,
                    max_pages=self.options.max_pages,
                    page_size=self.options.page_size,
                    workflow_id=workflow_id,
                )
            finally:
                locks.release(lock_name, self.holder_id)

            result.success = True
            result.processed = outcome.processed
            result.found_matches = outcome.found_matches
            result.total_targets = outcome.total_targets
            result.status = outcome.status
            result.budget_exhausted = outcome.budget_exhausted
            result.errors.extend(outcome.errors)

            audit.completed(workflow_id, result.to_dict())

        except ProfileNotFoundError as e:
            logger.error(str(e))
            store.mark_completed(e.profile_id, failed=True, last_error=str(e))
            result.status = MiningStatus.FAILED
            result.errors.append(str(e))
            audit.failed(workflow_id, {"error": str(e), **result.to_dict()})

        except SiteNotFoundError as e:
            logger.error(str(e))
            result.errors.append(str(e))
            audit.failed(workflow_id, {"error": str(e), **result.to_dict()})

        except Exception as e:
            result.errors.append(str(e))
            logger.exception(f"Mining run failed for {workflow_id}")
            audit.failed(workflow_id, {"error": str(e), **result.to_dict()})
            raise

        finally:
            result.finished_at = datetime.utcnow()

            if provider is not None and self._owns_provider:
                await provider.close()

            if self._owns_session:
                session.close()

        return result

    def _resolve_candidates(
        self,
        store: ProgressRepository,
        request: MiningRequest,
        result: MiningRunResult,
    ) -> list[MiningProfile]:
        """Load the profiles eligible for this invocation, empty for an empty pool.

        Raises:
            ProfileNotFoundError: If a named profile does not exist
        """
        if isinstance(request, SingleProfile):
            profile = store.get_by_id(request.profile_id)
            if profile is None:
                result.profile_id = request.profile_id
                raise ProfileNotFoundError(request.profile_id)
            return [profile]

        pool = list(store.list_pending(limit=self.options.pool_limit, site_id=request.site_id))
        if not pool:
            logger.info(f"No pending ICP mining profiles for site {request.site_id}")
        return pool

    def _lock_next(self, locks: LockManager, candidates: list[MiningProfile]) -> MiningProfile | None:
        """Lock the best candidate that no other run holds.

        A locked candidate is dropped and selection repeats over the rest,
        so one stuck profile cannot block its whole pool.
        """
        remaining = list(candidates)
        while remaining:
            profile = select_next_profile(remaining)
            if locks.acquire(
                profile_lock_name(profile.id),
                self.holder_id,
                ttl_minutes=self.config.mining.lock_ttl_minutes,
            ):
                logger.info(f"Selected profile {profile.id} ({profile.status}) from {len(candidates)} candidates")
                return profile

            logger.info(f"Profile {profile.id} is being mined elsewhere, skipping")
            remaining.remove(profile)
        return None


async def run_mining(
    request: MiningRequest,
    options: MiningOptions,
    *,
    session: Session | None = None,
    provider: PageSearchProvider | None = None,
    config: AppConfig | None = None,
) -> MiningRunResult:
    """Convenience function to run one mining invocation.

    Args:
        request: SingleProfile or SitePool
        options: Invocation limits
        session: Database session (created if omitted)
        provider: Page search provider (Finder-backed if omitted)
        config: Application config

    Returns:
        MiningRunResult summary
    """
    runner = MiningRunner(options, session=session, provider=provider, config=config)
    return await runner.run(request)
