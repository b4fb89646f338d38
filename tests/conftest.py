"""Shared test fixtures for bugops."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence

import pytest

from bugops.config.manager import ConfigManager
from bugops.notify import ChannelClient, Recorder
from bugops.store import InMemoryConfigStore
from bugops.tracker.client import TrackerError
from bugops.tracker.models import Bug, BugUpdate, Comment, HistoryEntry, SearchQuery


class FakeTracker:
    """In-memory TrackerClient that counts every call."""

    def __init__(self, bugs: list[Bug] | None = None) -> None:
        self.bugs: dict[int, Bug] = {bug.id: bug for bug in bugs or []}
        self.comments: dict[int, list[Comment]] = {}
        self.calls: list[tuple[str, object]] = []
        self.fail_reads = False
        self.read_delay = 0.0

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    @property
    def writes(self) -> int:
        return self.count("add_comment") + self.count("update_bug")

    async def _read(self, method: str, arg: object) -> None:
        self.calls.append((method, arg))
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if self.fail_reads:
            raise TrackerError(f"{method} unavailable", status_code=503)

    async def get_bug(self, bug_id: int) -> Bug:
        # answer with the state at the time the request was issued
        bug = self.bugs.get(bug_id)
        await self._read("get_bug", bug_id)
        if bug is None:
            raise TrackerError(f"bug {bug_id} not found", status_code=404)
        return bug

    async def get_bugs(self, bug_ids: Sequence[int]) -> list[Bug]:
        await self._read("get_bugs", tuple(bug_ids))
        return [self.bugs[bug_id] for bug_id in bug_ids if bug_id in self.bugs]

    async def search(self, query: SearchQuery) -> list[Bug]:
        await self._read("search", query)
        bugs = list(self.bugs.values())
        if query.status:
            bugs = [bug for bug in bugs if bug.status in query.status]
        if query.keywords:
            bugs = [bug for bug in bugs if set(query.keywords) <= set(bug.keywords)]
        if query.without_keywords:
            bugs = [bug for bug in bugs if not set(query.without_keywords) & set(bug.keywords)]
        return bugs

    async def get_comments(self, bug_id: int) -> list[Comment]:
        await self._read("get_comments", bug_id)
        return list(self.comments.get(bug_id, []))

    async def get_history(self, bug_id: int) -> list[HistoryEntry]:
        await self._read("get_history", bug_id)
        return []

    async def add_comment(self, bug_id: int, text: str, *, private: bool = False) -> int:
        self.calls.append(("add_comment", (bug_id, text)))
        comments = self.comments.setdefault(bug_id, [])
        comments.append(Comment(id=len(comments) + 100, bug_id=bug_id, text=text, creator="bot", count=len(comments)))
        return comments[-1].id

    async def update_bug(self, bug_id: int, update: BugUpdate) -> None:
        self.calls.append(("update_bug", (bug_id, update)))
        bug = self.bugs[bug_id]
        keywords = [word for word in bug.keywords if word not in update.keywords_remove] + list(update.keywords_add)
        changes: dict[str, object] = {"keywords": keywords}
        if update.status is not None:
            changes["status"] = update.status
        if update.resolution is not None:
            changes["resolution"] = update.resolution
        self.bugs[bug_id] = bug.model_copy(update=changes)


class RecordingTransport:
    """ChatTransport that keeps every posted message."""

    def __init__(self, *, fail: bool = False) -> None:
        self.messages: list[tuple[str, str, str | None]] = []
        self.fail = fail

    async def post_message(self, channel: str, text: str, *, ephemeral_user: str | None = None) -> None:
        if self.fail:
            raise ConnectionError("chat backend down")
        self.messages.append((channel, text, ephemeral_user))

    def texts(self, channel: str | None = None) -> list[str]:
        return [text for target, text, _ in self.messages if channel is None or target == channel]


@pytest.fixture(autouse=True)
def _reset_config_manager(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("BUGOPS_CONFIG", raising=False)
    ConfigManager._reset_for_tests()
    yield
    ConfigManager._reset_for_tests()


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker(
        [
            Bug(id=1, summary="crash on start", status="NEW", component=["api"]),
            Bug(id=2, summary="slow search", status="ASSIGNED", component=["ui"], keywords=["Stale"]),
        ]
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def recorder(transport: RecordingTransport) -> Recorder:
    return Recorder(ChannelClient(transport, "#admin", "#admin"), "BugzillaOperator")


@pytest.fixture
def store() -> InMemoryConfigStore:
    return InMemoryConfigStore()
