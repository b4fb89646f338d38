"""Fixtures for job tests (shared with chat tests)."""

from __future__ import annotations

import asyncio

import pytest

from bugops.jobs.models import JobContext, RunContext
from bugops.notify import ChannelClient
from bugops.tracker.debug import ReadOnlyDebugClient


class FakeJob:
    """Job whose sync blocks on an optional gate and can be told to fail."""

    def __init__(self, name: str, context: JobContext, schedule=None) -> None:  # type: ignore[no-untyped-def]
        self.name = name
        self.context = context
        self.schedule = schedule
        self.runs: list[RunContext] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.error: Exception | None = None

    async def sync(self, run: RunContext) -> None:
        self.runs.append(run)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def render(self, run: RunContext) -> str:
        await self.sync(run)
        return f"report {self.name}"


@pytest.fixture
def context(tracker, transport, store) -> JobContext:  # type: ignore[no-untyped-def]
    debug_channel = ChannelClient(transport, "#admin", "#admin", debug=True)
    return JobContext(
        client=tracker,
        debug_client=ReadOnlyDebugClient(tracker, debug_channel),
        channel=ChannelClient(transport, "#admin", "#admin"),
        debug_channel=debug_channel,
        store=store,
    )


@pytest.fixture
def make_job(context):  # type: ignore[no-untyped-def]
    def _make(name: str, schedule=None) -> FakeJob:  # type: ignore[no-untyped-def]
        return FakeJob(name, context, schedule)

    return _make
