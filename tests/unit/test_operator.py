"""Unit tests for operator startup and shutdown."""

from __future__ import annotations

import asyncio

import pytest

from bugops.chat.dispatcher import parse_command
from bugops.config.models import OperatorConfig
from bugops.errors import StartupError
from bugops.operator import SHUTDOWN_MESSAGE, Operator
from bugops.store import InMemoryConfigStore


class ScriptedListener:
    """Listener that sends fixed commands, then requests shutdown."""

    def __init__(self, *lines: str) -> None:
        self.lines = lines
        self.replies: list[str] = []
        self.results: list[str] = []

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def reply_ephemeral(self, text: str) -> None:
        self.replies.append(text)

    async def serve(self, dispatcher, shutdown: asyncio.Event) -> None:  # type: ignore[no-untyped-def]
        for line in self.lines:
            result = await dispatcher.handle(parse_command(line, user="alice", channel="#team"), self)
            self.results.append(result.status)
        shutdown.set()


@pytest.fixture
def config() -> OperatorConfig:
    return OperatorConfig.model_validate(
        {
            "credentials": {"api_key": "s3cret"},
            "chat": {"admin_channel": "#admin"},
            "groups": {"admins": ["alice"]},
            "components": ["api"],
            "disabled_jobs": ["stale", "stale-reset", "close-stale", "first-team-comment", "ghost"],
            "schedules": [{"channel": "#team", "reports": ["blocker-bugs", "bogus"], "when": ["0 9 * * *"]}],
        }
    )


async def test_unreachable_store_aborts_startup(config, tracker, transport) -> None:  # type: ignore[no-untyped-def]
    operator = Operator(config, tracker=tracker, transport=transport, store=InMemoryConfigStore(reachable=False))
    with pytest.raises(StartupError):
        await operator.run(asyncio.Event())
    assert transport.messages == []
    assert not operator.runner.running
    assert tracker.calls == []


async def test_run_announces_warns_and_shuts_down_once(config, tracker, transport, store) -> None:  # type: ignore[no-untyped-def]
    listener = ScriptedListener("report blocker-bugs", "admin trigger ghost")
    operator = Operator(config, tracker=tracker, transport=transport, store=store, listener=listener)

    await asyncio.wait_for(operator.run(asyncio.Event()), timeout=5.0)

    admin = transport.texts("#admin")
    assert admin[0].startswith("Bugzilla Operator Started")
    assert "s3cret" not in "\n".join(admin)
    assert admin.count(":warning: Unknown disabled controllers in config: ['ghost']") == 1
    assert admin.count(":warning: Unknown reports in config: ['bogus']") == 1
    assert admin.count(f":warning: {SHUTDOWN_MESSAGE}") == 1
    assert admin[-1] == f":warning: {SHUTDOWN_MESSAGE}"
    assert listener.results == ["ok", "unknown_job"]
    assert listener.replies[-1] == "Unknown job 'ghost'"
    assert tracker.writes == 0
    assert not operator.runner.running


async def test_registry_and_status(config, tracker, transport, store) -> None:  # type: ignore[no-untyped-def]
    operator = Operator(config, tracker=tracker, transport=transport, store=store)
    described = operator.registry.describe()
    assert described["controllers"] == ["close-stale", "first-team-comment", "new", "stale", "stale-reset"]
    assert described["reports"] == ["blocker-bugs"]
    assert described["scheduled_reports"] == ["blocker-bugs@#team"]
    assert operator.runner.enabled_handles()[0].name == "blocker-bugs@#team"
    assert operator.status()["cache"]["entries"] == 0


async def test_external_shutdown_stops_everything(config, tracker, transport, store) -> None:  # type: ignore[no-untyped-def]
    operator = Operator(config, tracker=tracker, transport=transport, store=store)
    shutdown = asyncio.Event()
    task = asyncio.create_task(operator.run(shutdown))
    while not transport.messages:
        await asyncio.sleep(0.005)
    shutdown.set()
    await asyncio.wait_for(task, timeout=5.0)
    assert transport.texts("#admin").count(f":warning: {SHUTDOWN_MESSAGE}") == 1
