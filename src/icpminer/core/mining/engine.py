"""
Pagination resume engine.

Runs one bounded, resumable scan of a mining profile:

1. Hydrate the population size with a probe when it is unknown
2. Reconcile the stored checkpoint into a start page
3. Fetch pages one at a time, persisting progress after each one
4. Finalize as completed, or re-queue as pending with the checkpoint intact
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from icpminer.core.audit import AuditLog, NullAuditLog
from icpminer.core.config.models import MiningStatus, StopReason
from icpminer.core.finder.base import PageSearchProvider, PageSearchRequest, PageSearchResult
from icpminer.core.logging import get_contextual_logger
from icpminer.persistence.models import MiningProfile
from icpminer.persistence.repo import ProgressRepository

from .checkpoint import compute_starting_page

# Page size the Finder API pages by when it does not report one
DEFAULT_PROVIDER_PAGE_SIZE = 10


@dataclass
class MiningOutcome:
    """Result of one engine invocation for one profile."""

    profile_id: str
    status: MiningStatus
    reason: StopReason

    # Deltas for this invocation
    processed: int = 0
    found_matches: int = 0

    total_targets: int | None = None
    pages_fetched: int = 0
    start_page: int = 0
    last_page: int | None = None
    budget_exhausted: bool = False

    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "status": self.status.value,
            "reason": self.reason.value,
            "processed": self.processed,
            "found_matches": self.found_matches,
            "total_targets": self.total_targets,
            "pages_fetched": self.pages_fetched,
            "start_page": self.start_page,
            "last_page": self.last_page,
            "budget_exhausted": self.budget_exhausted,
            "errors": self.errors,
        }


class MiningEngine:
    """Resumable paginated scan over a page search provider.

    Every page is committed to the progress store before the next one is
    requested, so an interrupted run loses at most the page in flight.
    """

    def __init__(
        self,
        store: ProgressRepository,
        provider: PageSearchProvider,
        audit: AuditLog | None = None,
        *,
        default_page_size: int = DEFAULT_PROVIDER_PAGE_SIZE,
    ) -> None:
        self.store = store
        self.provider = provider
        self.audit = audit or NullAuditLog()
        self.default_page_size = default_page_size

    async def run(
        self,
        profile: MiningProfile,
        *,
        site_id: str,
        user_id: str | None,
        target_matches: int,
        max_pages: int,
        page_size: int | None = None,
        workflow_id: str | None = None,
    ) -> MiningOutcome:
        """Run one bounded scan of a profile.

        Args:
            profile: Profile with its persisted checkpoint
            site_id: Owning site
            user_id: Owning user scope passed to the provider
            target_matches: Stop once cumulative matches reach this
            max_pages: Provider fetches allowed in this invocation,
                the hydration probe included
            page_size: Requested page size; the provider's own page size
                wins once it reports one
            workflow_id: Audit correlation id

        Returns:
            MiningOutcome for this invocation
        """
        profile_id = profile.id
        workflow_id = workflow_id or f"icp-mining-{profile_id}"
        log = get_contextual_logger("mining", profile=profile_id, site=site_id)

        effective_page_size = self.default_page_size
        total = profile.total_targets if (profile.total_targets or 0) > 0 else None
        processed_total = profile.processed_targets or 0
        found_total = profile.found_matches or 0
        stored_page = profile.current_page or 0

        outcome = MiningOutcome(
            profile_id=profile_id,
            status=MiningStatus.RUNNING,
            reason=StopReason.BUDGET_EXHAUSTED,
            total_targets=total,
        )

        self.store.mark_started(profile_id)
        self.audit.info(
            workflow_id,
            {
                "event": "processingIcp",
                "profile_id": profile_id,
                "total_targets": total,
                "processed_targets": processed_total,
                "found_matches": found_total,
                "current_page": stored_page,
                "target_matches": target_matches,
                "max_pages": max_pages,
                "requested_page_size": page_size,
            },
        )

        def request_for(page: int) -> PageSearchRequest:
            return PageSearchRequest(
                search_query_id=profile.search_query_id,
                page=page,
                page_size=effective_page_size,
                site_id=site_id,
                user_id=user_id,
                profile_id=profile_id,
            )

        # ---------------------------------------------------------------------
        # Hydration
        # ---------------------------------------------------------------------
        guarded = False
        if total is None and max_pages > 0:
            outcome.pages_fetched += 1
            try:
                probe = await self.provider.probe(request_for(0))
            except Exception as e:
                message = f"Hydration error: {e}"
                log.warning(message)
                outcome.errors.append(message)
                self.store.update_progress(profile_id, append_error=message)
                guarded = True
            else:
                if probe.page_size:
                    effective_page_size = probe.page_size
                if probe.total is not None and probe.total > 0:
                    total = probe.total
                    self.store.update_progress(
                        profile_id,
                        total_targets=total,
                        status=MiningStatus.RUNNING,
                    )
                    log.info(f"Hydrated total_targets={total}")
                else:
                    log.info("Provider reported no total, paging until has_more is false")
                    guarded = True

            self.audit.info(
                workflow_id,
                {"event": "hydratedTotals", "total_targets": total, "guarded": guarded},
            )

        outcome.total_targets = total

        # ---------------------------------------------------------------------
        # Checkpoint reconciliation
        # ---------------------------------------------------------------------
        page = compute_starting_page(stored_page, processed_total, effective_page_size)
        outcome.start_page = page
        self.store.update_progress(profile_id, current_page=page)

        log.info(
            f"Starting at page {page} "
            f"(stored page={stored_page}, processed={processed_total}, page_size={effective_page_size})"
        )
        self.audit.info(
            workflow_id,
            {
                "event": "paginationStart",
                "start_page": page,
                "page_size": effective_page_size,
                "guarded": guarded,
            },
        )

        # ---------------------------------------------------------------------
        # Bounded scan
        # ---------------------------------------------------------------------
        reason: StopReason | None = None

        while outcome.pages_fetched < max_pages:
            outcome.pages_fetched += 1

            try:
                result = await self.provider.search_page(request_for(page))
            except Exception as e:
                message = f"Page {page} search failed: {e}"
                log.warning(message)
                outcome.errors.append(message)
                self.store.update_progress(profile_id, append_error=message)
                reason = StopReason.FETCH_FAILED
                break

            outcome.last_page = page
            self._record_page(profile_id, page, result, total, outcome)

            if result.page_size:
                effective_page_size = result.page_size
            if total is None and result.total is not None and result.total > 0:
                total = result.total
                outcome.total_targets = total

            processed_total += result.processed
            found_total += result.found_matches

            self.audit.info(
                workflow_id,
                {
                    "event": "pageCompleted",
                    "page": page,
                    "processed_targets": processed_total,
                    "found_matches": found_total,
                    "target_matches": target_matches,
                    **result.to_dict(),
                },
            )

            if found_total >= target_matches:
                reason = StopReason.TARGET_REACHED
                break
            if total is not None and processed_total >= total:
                reason = StopReason.ALL_TARGETS_PROCESSED
                break
            if guarded and not result.has_more:
                reason = StopReason.NO_MORE_PAGES
                break

            page += 1
            self.store.update_progress(profile_id, current_page=page)

        # ---------------------------------------------------------------------
        # Finalize
        # ---------------------------------------------------------------------
        outcome.reason = reason or StopReason.BUDGET_EXHAUSTED
        outcome.budget_exhausted = outcome.reason == StopReason.BUDGET_EXHAUSTED

        summary = {
            "processed_targets": processed_total,
            "found_matches": found_total,
            "total_targets": total,
            "current_page": page,
            **outcome.to_dict(),
        }

        if outcome.reason.is_success:
            self.store.mark_completed(profile_id)
            outcome.status = MiningStatus.COMPLETED
            log.info(f"Mining completed ({outcome.reason.value}): {found_total} matches, {processed_total} processed")
            self.audit.completed(workflow_id, {"event": "icpMiningCompleted", **summary, "status": outcome.status.value})
        else:
            self.store.update_progress(profile_id, status=MiningStatus.PENDING)
            outcome.status = MiningStatus.PENDING
            log.info(f"Mining paused ({outcome.reason.value}) at page {page}, re-queued as pending")
            self.audit.info(workflow_id, {"event": "icpMiningPending", **summary, "status": outcome.status.value})

        return outcome

    def _record_page(
        self,
        profile_id: str,
        page: int,
        result: PageSearchResult,
        total: int | None,
        outcome: MiningOutcome,
    ) -> None:
        """Persist a fetched page's deltas, checkpoint and errors in one write."""
        page_error = None
        if not result.success:
            page_error = f"Page {page} returned errors: {', '.join(result.errors)}"
            outcome.errors.append(page_error)

        new_total = None
        if total is None and result.total is not None and result.total > 0:
            new_total = result.total

        self.store.update_progress(
            profile_id,
            delta_processed=result.processed,
            delta_found=result.found_matches,
            current_page=page,
            total_targets=new_total,
            append_error=page_error,
        )

        outcome.processed += result.processed
        outcome.found_matches += result.found_matches
