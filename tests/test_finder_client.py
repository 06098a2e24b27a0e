import httpx
import orjson
import pytest

from icpminer.core.errors import FetchError
from icpminer.core.fetch import RetryConfig
from icpminer.core.finder import FinderClient, parse_search_payload
from icpminer.core.finder.client import RetryableStatusError

NO_WAIT = RetryConfig(
    max_attempts=2,
    min_wait=0,
    max_wait=0,
    jitter=False,
    retry_exceptions=(httpx.TransportError, RetryableStatusError),
)


def _client(handler, **kwargs):
    return FinderClient(
        "https://finder.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        retry_config=NO_WAIT,
        **kwargs,
    )


def _persons(n):
    return [{"person": {"id": f"p{i}"}} for i in range(n)]


def test_payload_with_meta():
    body = {
        "success": True,
        "data": {
            "persons": _persons(2),
            "meta": {"total": 47, "page_size": 10, "has_more": True},
        },
    }

    page = parse_search_payload(body, page=0, page_size=20)

    assert len(page.persons) == 2
    assert page.total == 47
    assert page.page_size == 10
    assert page.has_more is True


def test_has_more_derived_from_total():
    body = {"data": {"results": _persons(10), "total": 25}}

    assert parse_search_payload(body, page=1, page_size=10).has_more is True
    assert parse_search_payload(body, page=2, page_size=10).has_more is False


def test_has_more_derived_from_full_page_without_total():
    assert parse_search_payload({"persons": _persons(10)}, page=0, page_size=10).has_more is True
    assert parse_search_payload({"persons": _persons(3)}, page=0, page_size=10).has_more is False


def test_missing_total_is_not_coerced():
    page = parse_search_payload({"data": {"persons": []}}, page=0, page_size=10)

    assert page.total is None
    assert page.persons == []


def test_camel_case_meta():
    body = {"data": {"persons": _persons(1), "meta": {"pageSize": 5, "hasMore": False, "total": 100}}}

    page = parse_search_payload(body, page=0, page_size=10)

    assert page.page_size == 5
    assert page.has_more is False


@pytest.mark.asyncio
async def test_search_posts_query_with_paging():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = orjson.loads(request.content)
        return httpx.Response(200, json={"data": {"persons": _persons(1), "meta": {"total": 1}}})

    client = _client(handler)
    page = await client.search({"role": "CTO"}, page=3, page_size=10)
    await client.close()

    assert seen["path"] == "/api/finder/person_role_search"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"role": "CTO", "page": 3, "page_size": 10}
    assert page.total == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_raised():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503, json={"error": "unavailable"})

    client = _client(handler)
    with pytest.raises(FetchError) as excinfo:
        await client.search({}, page=2, page_size=10)
    await client.close()

    assert len(calls) == 2
    assert excinfo.value.status_code == 503
    assert excinfo.value.page == 2


@pytest.mark.asyncio
async def test_transient_failure_recovers():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"data": {"persons": []}})

    client = _client(handler)
    page = await client.search({}, page=0, page_size=10)
    await client.close()

    assert len(calls) == 2
    assert page.persons == []


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(404, text="not found")

    client = _client(handler)
    with pytest.raises(FetchError) as excinfo:
        await client.search({}, page=0, page_size=10)
    await client.close()

    assert len(calls) == 1
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_unsuccessful_body_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "error": {"message": "quota exceeded"}})

    client = _client(handler)
    with pytest.raises(FetchError, match="quota exceeded"):
        await client.search({}, page=0, page_size=10)
    await client.close()
