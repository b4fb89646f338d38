"""Static recurring controllers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar

from bugops.config.models import OperatorConfig, StaleConfig
from bugops.jobs.models import IntervalSchedule, JobContext, RunContext
from bugops.tracker.models import OPEN_STATUSES, Bug, BugUpdate, SearchQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerSettings:
    stale: StaleConfig
    product: str = ""
    components: tuple[str, ...] = ()
    team: frozenset[str] = frozenset()
    resync_seconds: float = 3600.0

    @classmethod
    def from_config(cls, config: OperatorConfig) -> ControllerSettings:
        return cls(
            stale=config.stale,
            product=config.tracker.product,
            components=tuple(sorted(set(config.components))),
            team=frozenset(config.groups.get("team", [])),
            resync_seconds=config.runner.resync_seconds,
        )


class Controller:
    """Base class: a named job on a fixed resync interval."""

    name: ClassVar[str] = ""

    def __init__(self, context: JobContext, settings: ControllerSettings) -> None:
        self.context = context
        self.settings = settings
        self.schedule = IntervalSchedule(settings.resync_seconds)

    async def sync(self, run: RunContext) -> None:
        raise NotImplementedError

    def _query(self, **kwargs: object) -> SearchQuery:
        base: dict[str, object] = {
            "product": self.settings.product,
            "component": self.settings.components,
            "status": OPEN_STATUSES,
        }
        base.update(kwargs)
        return SearchQuery.model_validate(base)

    @staticmethod
    def _bug_list(bugs: Sequence[Bug]) -> str:
        return ", ".join(f"#{bug.id}" for bug in bugs)


class StaleController(Controller):
    """Mark open bugs without recent activity as stale."""

    name = "stale"

    async def sync(self, run: RunContext) -> None:
        stale = self.settings.stale
        cutoff = _day_floor(run.started_at) - timedelta(days=stale.stale_after_days)
        bugs = await run.client.search(self._query(without_keywords=(stale.keyword,), changed_before=cutoff))
        for bug in bugs:
            await run.client.update_bug(bug.id, BugUpdate(keywords_add=[stale.keyword], comment=stale.comment))
        logger.info("stale_marked count=%d mode=%s", len(bugs), run.mode.value)
        if bugs:
            await run.channel.message_channel(f"Marked {len(bugs)} bugs as stale: {self._bug_list(bugs)}")


class ResetStaleController(Controller):
    """Drop the stale keyword once somebody other than the bot comments."""

    name = "stale-reset"

    async def sync(self, run: RunContext) -> None:
        stale = self.settings.stale
        bugs = await run.client.search(self._query(keywords=(stale.keyword,)))
        reset: list[Bug] = []
        for bug in bugs:
            comments = await run.client.get_comments(bug.id)
            if not comments or comments[-1].creator == stale.bot_login:
                continue
            await run.client.update_bug(bug.id, BugUpdate(keywords_remove=[stale.keyword]))
            reset.append(bug)
        if reset:
            await run.channel.message_channel(f"Reset stale flag on {len(reset)} bugs: {self._bug_list(reset)}")


class CloseStaleController(Controller):
    """Close bugs that stayed stale for the grace period."""

    name = "close-stale"

    async def sync(self, run: RunContext) -> None:
        stale = self.settings.stale
        cutoff = _day_floor(run.started_at) - timedelta(days=stale.close_after_days)
        bugs = await run.client.search(self._query(keywords=(stale.keyword,), changed_before=cutoff))
        for bug in bugs:
            await run.client.add_comment(bug.id, stale.close_comment)
            await run.client.update_bug(bug.id, BugUpdate(status="CLOSED", resolution=stale.close_resolution))
        if bugs:
            await run.channel.message_channel(f"Closed {len(bugs)} stale bugs: {self._bug_list(bugs)}")


class FirstTeamCommentController(Controller):
    """Announce the first response from a team member on new bugs."""

    name = "first-team-comment"

    async def sync(self, run: RunContext) -> None:
        if not self.settings.team:
            logger.debug("first_team_comment_skipped reason=no_team_configured")
            return
        since = _day_floor(run.started_at) - timedelta(days=self.settings.stale.lookback_days)
        bugs = await run.client.search(self._query(status=("NEW", "ASSIGNED"), created_after=since))
        for bug in bugs:
            key = f"first-team-comment/{bug.id}"
            if await run.store.get(key):
                continue
            comments = await run.client.get_comments(bug.id)
            first = next((c for c in comments if c.count > 0 and c.creator in self.settings.team), None)
            if first is None:
                continue
            delay = ""
            if first.creation_time is not None and bug.creation_time is not None:
                hours = (first.creation_time - bug.creation_time).total_seconds() / 3600
                delay = f" after {hours:.1f}h"
            await run.channel.message_channel(f"Bug #{bug.id} got its first team comment from {first.creator}{delay}")
            if not run.debug:
                await run.store.set(key, run.started_at.isoformat())


class NewBugController(Controller):
    """Post bugs filed since the previous run."""

    name = "new"
    STATE_KEY = "new/last-seen"

    async def sync(self, run: RunContext) -> None:
        raw = await run.store.get(self.STATE_KEY)
        since = datetime.fromisoformat(raw) if raw else run.started_at - timedelta(days=1)
        bugs = await run.client.search(self._query(status=("NEW",), created_after=since))
        for bug in bugs:
            await run.channel.message_channel(f"New bug #{bug.id}: {bug.summary} ({', '.join(bug.component)})")
        if not run.debug:
            await run.store.set(self.STATE_KEY, run.started_at.isoformat())


CONTROLLER_TYPES: tuple[type[Controller], ...] = (
    StaleController,
    ResetStaleController,
    CloseStaleController,
    FirstTeamCommentController,
    NewBugController,
)


def build_controllers(context: JobContext, settings: ControllerSettings) -> list[Controller]:
    return [controller_type(context, settings) for controller_type in CONTROLLER_TYPES]


def _day_floor(value: datetime) -> datetime:
    # whole-day cutoffs keep search fingerprints stable within a day
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
