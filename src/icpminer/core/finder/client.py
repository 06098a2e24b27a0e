"""
Finder API client using httpx.

Wraps the person role search endpoint with:
- Bearer authentication
- Automatic retry with exponential backoff on transient failures
- Normalization of pagination metadata (total, page size, has_more)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from icpminer.core.errors import FetchError
from icpminer.core.fetch.retries import RetryConfig, retry_async

logger = logging.getLogger(__name__)

# Status codes that should trigger retry
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class RetryableStatusError(Exception):
    """Transient HTTP status worth another attempt."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code} from {response.request.url}")


@dataclass
class FinderPage:
    """Normalized page from the person role search endpoint."""

    persons: list[dict[str, Any]]
    page: int
    page_size: int
    has_more: bool
    total: int | None = None


def _first_int(*values: Any) -> int | None:
    for value in values:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _first_bool(*values: Any) -> bool | None:
    for value in values:
        if isinstance(value, bool):
            return value
    return None


def parse_search_payload(body: Any, page: int, page_size: int) -> FinderPage:
    """Normalize a person role search response body.

    Total is never coerced when absent. has_more prefers the explicit
    flag, otherwise it is derived from the total, otherwise from whether
    the page came back full.
    """
    payload = body.get("data", body) if isinstance(body, dict) else {}
    if not isinstance(payload, dict):
        payload = {}

    persons = payload.get("persons") or payload.get("results") or payload.get("search_results") or []
    meta = payload.get("meta") or {}

    total = _first_int(meta.get("total"), payload.get("total"))
    current_page = _first_int(meta.get("page"))
    if current_page is None:
        current_page = page
    normalized_page_size = _first_int(meta.get("page_size"), meta.get("pageSize"))
    if normalized_page_size is None:
        normalized_page_size = page_size

    explicit_has_more = _first_bool(meta.get("has_more"), meta.get("hasMore"))
    if explicit_has_more is not None:
        has_more = explicit_has_more
    elif total is not None:
        has_more = (current_page + 1) * normalized_page_size < total
    else:
        has_more = len(persons) == normalized_page_size

    return FinderPage(
        persons=list(persons),
        page=current_page,
        page_size=normalized_page_size,
        has_more=has_more,
        total=total,
    )


class FinderClient:
    """Async client for the Finder person search API."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        search_path: str = "/api/finder/person_role_search",
        timeout: float = 60.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL
            api_key: Bearer token
            search_path: Path of the person role search endpoint
            timeout: Request timeout in seconds
            max_retries: Maximum attempts per request
            transport: Custom httpx transport (tests)
            retry_config: Override backoff settings
        """
        self.base_url = base_url.rstrip("/")
        self.search_path = search_path
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig(
            max_attempts=max_retries,
            retry_exceptions=(httpx.TransportError, RetryableStatusError),
        )

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "FinderClient":
        """Build a client from a FinderConfig."""
        return cls(
            config.base_url,
            api_key=config.api_key,
            search_path=config.search_path,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            **kwargs,
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def _post_once(self, path: str, body: dict[str, Any]) -> httpx.Response:
        client = await self._ensure_client()
        response = await client.post(path, json=body)
        if response.status_code in RETRY_STATUS_CODES:
            raise RetryableStatusError(response)
        return response

    async def post_json(self, path: str, body: dict[str, Any]) -> Any:
        """POST a JSON body and return the decoded response.

        Raises:
            FetchError: On transport failure, error status or invalid JSON
        """
        try:
            response = await retry_async(self._post_once, path, body, config=self.retry_config)
        except RetryableStatusError as e:
            raise FetchError(
                f"{path} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"{path} transport error: {e}", cause=e) from e

        if response.is_error:
            raise FetchError(
                f"{path} failed with status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"{path} returned invalid JSON", cause=e) from e

    async def search(self, query: dict[str, Any], page: int, page_size: int) -> FinderPage:
        """Run one page of a person role search.

        The saved query parameters are spread into the request body
        alongside page and page_size.
        """
        body = {**(query or {}), "page": page, "page_size": page_size}
        logger.debug("Person role search request: %s", body)

        try:
            data = await self.post_json(self.search_path, body)
        except FetchError as e:
            e.page = page
            raise

        if isinstance(data, dict) and data.get("success") is False:
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else error
            raise FetchError(message or "Finder person_role_search failed", page=page)

        return parse_search_payload(data, page, page_size)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
