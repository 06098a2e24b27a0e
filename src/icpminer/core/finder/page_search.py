"""
Finder-backed page search provider.

Fetches one page of the person role search and hands every person on it
to an enricher that may turn it into a lead.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from icpminer.core.errors import SearchQueryNotFoundError
from icpminer.persistence.repo import SearchQueryRepository

from .base import PageSearchProvider, PageSearchRequest, PageSearchResult
from .client import FinderClient

logger = logging.getLogger(__name__)


# =============================================================================
# Person Candidates
# =============================================================================


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


@dataclass
class PersonCandidate:
    """A person from a search page, flattened for enrichment."""

    external_person_id: str | None
    full_name: str | None = None
    company_name: str | None = None
    role_title: str | None = None
    linkedin_profile: str | None = None
    external_organization_id: str | None = None
    location: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_search_result(cls, result: dict[str, Any]) -> "PersonCandidate":
        """Build from either a nested {person, organization} result or a flat person."""
        person = result.get("person") if isinstance(result.get("person"), dict) else {}
        organization = result.get("organization") if isinstance(result.get("organization"), dict) else {}

        external_id = (
            person.get("id")
            or result.get("external_person_id")
            or result.get("person_id")
            or (result.get("id") if not person else None)
        )

        location = _dig(person, "location", "name")
        if location is None and isinstance(result.get("location"), str):
            location = result["location"]

        linkedin = (
            person.get("linkedin_url")
            or _dig(result, "linkedin_info", "public_profile_url")
            or _dig(person, "linkedin_info", "public_profile_url")
            or result.get("linkedin_url")
        )

        return cls(
            external_person_id=str(external_id) if external_id is not None else None,
            full_name=person.get("full_name") or result.get("full_name") or result.get("name"),
            company_name=(
                organization.get("name")
                or result.get("company_name")
                or result.get("organization_name")
                or result.get("company")
            ),
            role_title=result.get("role_title"),
            linkedin_profile=linkedin,
            external_organization_id=(
                str(organization["id"]) if organization.get("id") is not None else None
            ),
            location=location,
            raw=result,
        )

    @property
    def label(self) -> str:
        return self.full_name or self.external_person_id or "unknown"


# =============================================================================
# Enrichment
# =============================================================================


@dataclass
class EnrichmentResult:
    """Outcome of enriching one person."""

    success: bool
    lead_id: str | None = None
    error: str | None = None


class Enricher(ABC):
    """Turns a person candidate into a lead, when it qualifies."""

    @abstractmethod
    async def enrich(
        self,
        candidate: PersonCandidate,
        *,
        site_id: str,
        user_id: str | None,
        search_query_id: str,
    ) -> EnrichmentResult:
        ...


class HttpEnricher(Enricher):
    """Delegates enrichment to a Finder endpoint."""

    def __init__(self, client: FinderClient, path: str = "/api/finder/enrich_person"):
        self.client = client
        self.path = path

    async def enrich(
        self,
        candidate: PersonCandidate,
        *,
        site_id: str,
        user_id: str | None,
        search_query_id: str,
    ) -> EnrichmentResult:
        body = {
            "person_id": candidate.external_person_id,
            "linkedin_profile": candidate.linkedin_profile,
            "company_name": candidate.company_name,
            "site_id": site_id,
            "user_id": user_id,
            "search_query_id": search_query_id,
        }
        data = await self.client.post_json(self.path, body)
        if not isinstance(data, dict):
            return EnrichmentResult(success=False, error="Unexpected enrichment response")

        payload = data.get("data") if isinstance(data.get("data"), dict) else data
        lead_id = payload.get("lead_id") or payload.get("leadId")
        return EnrichmentResult(
            success=bool(data.get("success", True)),
            lead_id=str(lead_id) if lead_id else None,
            error=data.get("error") if isinstance(data.get("error"), str) else None,
        )


# =============================================================================
# Page Search
# =============================================================================


class FinderPageSearch(PageSearchProvider):
    """Processes one page of a saved person role search."""

    def __init__(
        self,
        client: FinderClient,
        session: Session,
        enricher: Enricher,
        *,
        owns_client: bool = True,
    ):
        self.client = client
        self.queries = SearchQueryRepository(session)
        self.enricher = enricher
        self.owns_client = owns_client

    def _load_query(self, search_query_id: str) -> dict[str, Any]:
        search_query = self.queries.get_by_id(search_query_id)
        if search_query is None:
            raise SearchQueryNotFoundError(search_query_id)
        return search_query.query or {}

    async def probe(self, request: PageSearchRequest) -> PageSearchResult:
        """Fetch the page without enriching anyone on it."""
        query = self._load_query(request.search_query_id)
        page = await self.client.search(query, request.page, request.page_size)
        return PageSearchResult(
            persons=page.persons,
            total=page.total,
            has_more=page.has_more,
            page_size=page.page_size,
        )

    async def search_page(self, request: PageSearchRequest) -> PageSearchResult:
        query = self._load_query(request.search_query_id)
        page = await self.client.search(query, request.page, request.page_size)

        result = PageSearchResult(
            persons=page.persons,
            total=page.total if request.page == 0 else None,
            has_more=page.has_more,
            page_size=page.page_size,
        )

        if not page.persons:
            logger.info("No persons found on page %s for %s", request.page, request.search_query_id)

        for raw in page.persons:
            if not isinstance(raw, dict):
                continue
            candidate = PersonCandidate.from_search_result(raw)

            if not candidate.external_person_id:
                result.errors.append(f"Person missing external_person_id for {candidate.label}")
                result.processed += 1
                continue

            try:
                enrichment = await self.enricher.enrich(
                    candidate,
                    site_id=request.site_id,
                    user_id=request.user_id,
                    search_query_id=request.search_query_id,
                )
            except Exception as e:
                logger.warning("Enrichment failed for %s: %s", candidate.label, e)
                result.errors.append(f"Enrich failed for {candidate.label}: {e}")
                result.processed += 1
                continue

            result.processed += 1
            if enrichment.success and enrichment.lead_id:
                result.leads_created.append(enrichment.lead_id)
                result.found_matches += 1

        result.success = not result.errors
        return result

    async def close(self) -> None:
        if self.owns_client:
            await self.client.close()
