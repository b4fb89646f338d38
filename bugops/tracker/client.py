"""Tracker client interface and the Bugzilla REST implementation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from bugops.errors import BugopsError
from bugops.tracker.models import Bug, BugUpdate, Comment, HistoryEntry, SearchQuery

logger = logging.getLogger(__name__)

READ_METHODS = ("get_bug", "get_bugs", "search", "get_comments", "get_history")
WRITE_METHODS = ("add_comment", "update_bug")


class TrackerError(BugopsError):
    """Remote tracker failure (network, auth, rate limit, bad response).

    Treated as opaque and non-retriable by the operator.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TrackerClient(Protocol):
    """Operations the operator needs from the tracker.

    Cancellation follows asyncio task cancellation.
    """

    async def get_bug(self, bug_id: int) -> Bug: ...

    async def get_bugs(self, bug_ids: Sequence[int]) -> list[Bug]: ...

    async def search(self, query: SearchQuery) -> list[Bug]: ...

    async def get_comments(self, bug_id: int) -> list[Comment]: ...

    async def get_history(self, bug_id: int) -> list[HistoryEntry]: ...

    async def add_comment(self, bug_id: int, text: str, *, private: bool = False) -> int: ...

    async def update_bug(self, bug_id: int, update: BugUpdate) -> None: ...


class RestTrackerClient:
    """TrackerClient backed by the Bugzilla REST API."""

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str = "",
        username: str = "",
        password: str = "",
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        auth: httpx.BasicAuth | None = None
        if api_key:
            headers["X-BUGZILLA-API-KEY"] = api_key
        elif username:
            auth = httpx.BasicAuth(username, password)
        self._http = httpx.AsyncClient(
            base_url=endpoint.rstrip("/") + "/rest",
            headers=headers,
            auth=auth,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_bug(self, bug_id: int) -> Bug:
        payload = await self._request("GET", f"/bug/{bug_id}")
        bugs = payload.get("bugs") or []
        if not bugs:
            raise TrackerError(f"bug {bug_id} not found", status_code=404)
        return Bug.model_validate(bugs[0])

    async def get_bugs(self, bug_ids: Sequence[int]) -> list[Bug]:
        if not bug_ids:
            return []
        payload = await self._request("GET", "/bug", params=[("id", str(bug_id)) for bug_id in bug_ids])
        return [Bug.model_validate(item) for item in payload.get("bugs") or []]

    async def search(self, query: SearchQuery) -> list[Bug]:
        payload = await self._request("GET", "/bug", params=query.to_params())
        return [Bug.model_validate(item) for item in payload.get("bugs") or []]

    async def get_comments(self, bug_id: int) -> list[Comment]:
        payload = await self._request("GET", f"/bug/{bug_id}/comment")
        raw = (payload.get("bugs") or {}).get(str(bug_id), {}).get("comments") or []
        return [Comment.model_validate(item) for item in raw]

    async def get_history(self, bug_id: int) -> list[HistoryEntry]:
        payload = await self._request("GET", f"/bug/{bug_id}/history")
        bugs = payload.get("bugs") or []
        raw = bugs[0].get("history", []) if bugs else []
        return [HistoryEntry.model_validate(item) for item in raw]

    async def add_comment(self, bug_id: int, text: str, *, private: bool = False) -> int:
        payload = await self._request(
            "POST",
            f"/bug/{bug_id}/comment",
            json={"comment": text, "is_private": private},
        )
        return int(payload.get("id", 0))

    async def update_bug(self, bug_id: int, update: BugUpdate) -> None:
        await self._request("PUT", f"/bug/{bug_id}", json=update.to_payload())

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TrackerError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise TrackerError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TrackerError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise TrackerError(f"{method} {path} returned unexpected payload")
        if payload.get("error"):
            raise TrackerError(str(payload.get("message") or "tracker error"), status_code=response.status_code)
        logger.debug("tracker_request method=%s path=%s status=%s", method, path, response.status_code)
        return payload
