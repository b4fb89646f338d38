"""Debug decorator: reads go through, writes are only described."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from bugops.notify import ChannelClient
from bugops.tracker.client import TrackerClient
from bugops.tracker.models import Bug, BugUpdate, Comment, HistoryEntry, SearchQuery

logger = logging.getLogger(__name__)


class ReadOnlyDebugClient:
    """TrackerClient that never writes to the tracker.

    Mutations are suppressed and the text that would have been sent is
    posted to *debug_channel* instead. The wrapped client is usually the
    shared cached client, so debug reads still warm the cache, while
    suppressed writes never invalidate it.
    """

    def __init__(self, delegate: TrackerClient, debug_channel: ChannelClient) -> None:
        self._delegate = delegate
        self._debug_channel = debug_channel
        self.suppressed = 0

    async def get_bug(self, bug_id: int) -> Bug:
        return await self._delegate.get_bug(bug_id)

    async def get_bugs(self, bug_ids: Sequence[int]) -> list[Bug]:
        return await self._delegate.get_bugs(bug_ids)

    async def search(self, query: SearchQuery) -> list[Bug]:
        return await self._delegate.search(query)

    async def get_comments(self, bug_id: int) -> list[Comment]:
        return await self._delegate.get_comments(bug_id)

    async def get_history(self, bug_id: int) -> list[HistoryEntry]:
        return await self._delegate.get_history(bug_id)

    async def add_comment(self, bug_id: int, text: str, *, private: bool = False) -> int:
        visibility = "private comment" if private else "comment"
        await self._report(bug_id, f"Would have added {visibility} to bug {bug_id}:\n> {text}")
        return 0

    async def update_bug(self, bug_id: int, update: BugUpdate) -> None:
        await self._report(bug_id, f"Would have updated bug {bug_id}: {update.describe()}")

    async def _report(self, bug_id: int, text: str) -> None:
        self.suppressed += 1
        logger.info("debug_write_suppressed bug_id=%s", bug_id)
        await self._debug_channel.message_channel(text)
