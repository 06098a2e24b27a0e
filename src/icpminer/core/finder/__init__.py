"""Finder person search provider."""

from .base import PageSearchProvider, PageSearchRequest, PageSearchResult
from .client import FinderClient, FinderPage, parse_search_payload
from .page_search import (
    Enricher,
    EnrichmentResult,
    FinderPageSearch,
    HttpEnricher,
    PersonCandidate,
)

__all__ = [
    "PageSearchProvider",
    "PageSearchRequest",
    "PageSearchResult",
    "FinderClient",
    "FinderPage",
    "parse_search_payload",
    "Enricher",
    "EnrichmentResult",
    "FinderPageSearch",
    "HttpEnricher",
    "PersonCandidate",
]
