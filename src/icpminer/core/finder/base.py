"""
Page search provider contract.

A provider returns one page of candidate persons plus pagination
metadata, and performs its own per-person enrichment side effects. The
mining engine only sees the aggregate counts and the total/has_more
signals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class PageSearchRequest:
    """One page to fetch for a mining profile."""

    search_query_id: str
    page: int  # 0-based
    page_size: int
    site_id: str
    user_id: str | None = None

    # Correlation only
    profile_id: str | None = None


@dataclass
class PageSearchResult:
    """Outcome of processing one page."""

    success: bool = True
    persons: list[dict[str, Any]] = field(default_factory=list)
    total: int | None = None
    has_more: bool = False
    processed: int = 0
    found_matches: int = 0
    leads_created: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    # Page size the provider actually paged by, when it reports one
    page_size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "persons": len(self.persons),
            "total": self.total,
            "has_more": self.has_more,
            "processed": self.processed,
            "found_matches": self.found_matches,
            "leads_created": len(self.leads_created),
            "errors": self.errors,
            "page_size": self.page_size,
        }


class PageSearchProvider(ABC):
    """Abstract base for page search providers."""

    @abstractmethod
    async def search_page(self, request: PageSearchRequest) -> PageSearchResult:
        """Fetch and process one page.

        Raises:
            FetchError: If the page could not be fetched
        """
        ...

    async def probe(self, request: PageSearchRequest) -> PageSearchResult:
        """Fetch a page only to learn the population size.

        Defaults to a full search_page call; providers with side effects
        per person should override this to skip them.
        """
        return await self.search_page(request)

    async def close(self) -> None:
        """Release any held resources."""
        return None

    async def __aenter__(self) -> "PageSearchProvider":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
