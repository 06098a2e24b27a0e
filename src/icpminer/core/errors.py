"""
Exception hierarchy for the mining engine.
"""

from __future__ import annotations


class MiningError(Exception):
    """Base class for mining errors."""


class ProfileNotFoundError(MiningError):
    """Requested mining profile does not exist."""

    def __init__(self, profile_id: str, message: str | None = None):
        self.profile_id = profile_id
        super().__init__(message or f"icp_mining not found: {profile_id}")


class SiteNotFoundError(MiningError):
    """Site could not be resolved to an owning user."""

    def __init__(self, site_id: str, message: str | None = None):
        self.site_id = site_id
        super().__init__(message or f"Failed to get site information: {site_id}")


class SearchQueryNotFoundError(MiningError):
    """Saved search criteria referenced by a profile is missing."""

    def __init__(self, search_query_id: str):
        self.search_query_id = search_query_id
        super().__init__(f"Failed to get role query data: {search_query_id}")


class FetchError(MiningError):
    """A single page fetch from the search provider failed.

    Soft failure: the scan for the current invocation is aborted but the
    profile stays resumable.
    """

    def __init__(
        self,
        message: str,
        page: int | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        self.page = page
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)
