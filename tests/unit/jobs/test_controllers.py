"""Unit tests for the built-in controllers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from bugops.config.models import OperatorConfig, StaleConfig
from bugops.jobs.controllers import (
    CloseStaleController,
    ControllerSettings,
    FirstTeamCommentController,
    NewBugController,
    ResetStaleController,
    StaleController,
    build_controllers,
)
from bugops.jobs.models import ExecutionMode
from bugops.jobs.registry import JobRegistry
from bugops.tracker.models import Comment


@pytest.fixture
def settings() -> ControllerSettings:
    return ControllerSettings(stale=StaleConfig(bot_login="bot"), components=("api", "ui"), team=frozenset({"dev"}))


async def _run(controller, recorder, mode: ExecutionMode = ExecutionMode.PRODUCTION) -> None:  # type: ignore[no-untyped-def]
    handle = JobRegistry().add_controller(controller)
    await handle.run(mode, recorder=recorder, shutdown=asyncio.Event())


def test_build_controllers_names(context) -> None:  # type: ignore[no-untyped-def]
    cfg = OperatorConfig(groups={"team": ["dev"]}, components=["ui", "api"])
    settings = ControllerSettings.from_config(cfg)
    names = [controller.name for controller in build_controllers(context, settings)]
    assert names == ["stale", "stale-reset", "close-stale", "first-team-comment", "new"]
    assert settings.team == frozenset({"dev"})
    assert settings.components == ("api", "ui")


async def test_stale_marks_inactive_bugs(context, settings, tracker, transport, recorder) -> None:  # type: ignore[no-untyped-def]
    await _run(StaleController(context, settings), recorder)
    assert tracker.count("update_bug") == 1
    assert tracker.bugs[1].keywords == ["Stale"]
    assert "Marked 1 bugs as stale: #1" in transport.texts("#admin")


async def test_stale_debug_run_writes_nothing(context, settings, tracker, transport, recorder) -> None:  # type: ignore[no-untyped-def]
    await _run(StaleController(context, settings), recorder, ExecutionMode.DEBUG)
    assert tracker.writes == 0
    assert tracker.bugs[1].keywords == []
    assert any(text.startswith("[DEBUG] Would have updated bug 1:") for text in transport.texts("#admin"))


async def test_stale_reset_ignores_bot_comments(context, settings, tracker, recorder) -> None:  # type: ignore[no-untyped-def]
    tracker.comments[2] = [Comment(id=1, bug_id=2, creator="bot", count=1)]
    await _run(ResetStaleController(context, settings), recorder)
    assert tracker.writes == 0

    tracker.comments[2].append(Comment(id=2, bug_id=2, creator="reporter", count=2))
    await _run(ResetStaleController(context, settings), recorder)
    assert tracker.bugs[2].keywords == []


async def test_close_stale_comments_and_closes(context, settings, tracker, transport, recorder) -> None:  # type: ignore[no-untyped-def]
    await _run(CloseStaleController(context, settings), recorder)
    assert tracker.count("add_comment") == 1
    assert tracker.bugs[2].status == "CLOSED"
    assert tracker.bugs[2].resolution == "WONTFIX"
    assert "Closed 1 stale bugs: #2" in transport.texts("#admin")


async def test_first_team_comment_announced_once(context, settings, tracker, transport, store, recorder) -> None:  # type: ignore[no-untyped-def]
    created = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
    tracker.bugs[1] = tracker.bugs[1].model_copy(update={"creation_time": created})
    tracker.comments[1] = [
        Comment(id=1, bug_id=1, creator="reporter", count=0),
        Comment(id=2, bug_id=1, creator="dev", count=1, creation_time=datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)),
    ]
    controller = FirstTeamCommentController(context, settings)

    await _run(controller, recorder, ExecutionMode.DEBUG)
    assert store.data == {}

    await _run(controller, recorder)
    await _run(controller, recorder)
    announcements = [text for text in transport.texts("#admin") if text == "Bug #1 got its first team comment from dev after 3.0h"]
    assert len(announcements) == 1
    assert "first-team-comment/1" in store.data


async def test_new_bugs_posted_and_remembered(context, settings, transport, store, recorder) -> None:  # type: ignore[no-untyped-def]
    await _run(NewBugController(context, settings), recorder)
    assert "New bug #1: crash on start (api)" in transport.texts("#admin")
    assert NewBugController.STATE_KEY in store.data
