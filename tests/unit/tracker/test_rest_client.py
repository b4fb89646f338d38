"""Unit tests for the Bugzilla REST client."""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from bugops.tracker.client import RestTrackerClient, TrackerError
from bugops.tracker.models import BugUpdate, SearchQuery


def _client(handler) -> RestTrackerClient:  # type: ignore[no-untyped-def]
    return RestTrackerClient(
        "https://bugzilla.example.com/",
        api_key="key-123",
        transport=httpx.MockTransport(handler),
    )


async def test_get_bug_sends_api_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"bugs": [{"id": 7, "summary": "boom", "component": ["api"]}]})

    client = _client(handler)
    bug = await client.get_bug(7)
    await client.aclose()

    assert bug.id == 7
    assert bug.component == ["api"]
    assert seen[0].url.path == "/rest/bug/7"
    assert seen[0].headers["X-BUGZILLA-API-KEY"] == "key-123"


async def test_search_renders_query_parameters() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"bugs": [{"id": 1}, {"id": 2}]})

    client = _client(handler)
    query = SearchQuery(product="OpenShift", component=("api", "ui"), without_keywords=("Stale",), limit=5)
    bugs = await client.search(query)
    await client.aclose()

    assert [bug.id for bug in bugs] == [1, 2]
    params = seen[0].url.params
    assert params.get_list("component") == ["api", "ui"]
    assert params["f1"] == "keywords"
    assert params["o1"] == "notsubstring"
    assert params["v1"] == "Stale"
    assert params["limit"] == "5"


async def test_get_comments_unwraps_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        comments = [{"id": 10, "bug_id": 3, "text": "hi", "creator": "dev", "count": 0}]
        return httpx.Response(200, json={"bugs": {"3": {"comments": comments}}})

    client = _client(handler)
    comments = await client.get_comments(3)
    await client.aclose()
    assert comments[0].creator == "dev"


async def test_update_bug_sends_payload() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"bugs": [{"id": 3, "changes": {}}]})

    client = _client(handler)
    await client.update_bug(3, BugUpdate(keywords_add=["Stale"], comment="stale now"))
    await client.aclose()
    assert bodies == [{"keywords": {"add": ["Stale"]}, "comment": {"body": "stale now"}}]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"error": True, "message": "bad key"}),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json={"error": True, "message": "invalid bug"}),
    ],
)
async def test_failures_become_tracker_errors(response: httpx.Response) -> None:
    client = _client(lambda request: response)
    with pytest.raises(TrackerError):
        await client.get_bug(1)
    await client.aclose()


async def test_transport_errors_become_tracker_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    with pytest.raises(TrackerError, match="failed"):
        await client.search(SearchQuery())
    await client.aclose()


async def test_get_bugs_requests_all_ids() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"bugs": [{"id": 4}, {"id": 9}]})

    client = _client(handler)
    assert await client.get_bugs([]) == []
    bugs = await client.get_bugs([4, 9])
    await client.aclose()
    assert [bug.id for bug in bugs] == [4, 9]
    assert len(seen) == 1
    assert seen[0].url.params.get_list("id") == ["4", "9"]


async def test_basic_auth_used_without_api_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"bugs": [{"id": 1}]})

    client = RestTrackerClient(
        "https://bugzilla.example.com",
        username="bot@example.com",
        password="hunter2",
        transport=httpx.MockTransport(handler),
    )
    await client.get_bug(1)
    await client.aclose()

    assert seen[0].headers["Authorization"] == "Basic " + base64.b64encode(b"bot@example.com:hunter2").decode()
    assert "X-BUGZILLA-API-KEY" not in seen[0].headers


async def test_api_key_wins_over_basic_auth() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"bugs": [{"id": 1}]})

    client = RestTrackerClient(
        "https://bugzilla.example.com",
        api_key="key-123",
        username="bot@example.com",
        password="hunter2",
        transport=httpx.MockTransport(handler),
    )
    await client.get_bug(1)
    await client.aclose()

    assert seen[0].headers["X-BUGZILLA-API-KEY"] == "key-123"
    assert "Authorization" not in seen[0].headers
