"""Report jobs and the report registration table."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from functools import partial

from bugops.jobs.models import JobContext, RunContext, Schedule
from bugops.jobs.registry import ReportFactory
from bugops.tracker.client import TrackerClient
from bugops.tracker.models import OPEN_STATUSES, Bug, SearchQuery

logger = logging.getLogger(__name__)

ReportFunction = Callable[[TrackerClient, Sequence[str]], Awaitable[str]]


class ScheduledReport:
    """Job that renders a report and posts it to its channel.

    Rendering always goes through the read-only debug client, so a report
    can never write to the tracker.
    """

    def __init__(
        self,
        name: str,
        context: JobContext,
        components: Sequence[str],
        schedule: Schedule | None,
        *,
        report: ReportFunction,
    ) -> None:
        self.name = name
        self.context = context
        self.components = tuple(sorted(set(components)))
        self.schedule = schedule
        self._report = report

    async def render(self, run: RunContext) -> str:
        # reports only read; writes are suppressed whatever the run mode
        return await self._report(self.context.debug_client, self.components)

    async def sync(self, run: RunContext) -> None:
        text = await self.render(run)
        await run.channel.message_channel(text)
        logger.info("report_posted report=%s channel=%s mode=%s", self.name, run.channel.channel, run.mode.value)


def _hour_floor() -> datetime:
    # hour buckets let repeated runs share cached search results
    return datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)


def _bug_line(bug: Bug) -> str:
    owner = f" ({bug.assigned_to})" if bug.assigned_to else ""
    return f"• #{bug.id} [{bug.status}] {bug.summary}{owner}"


def _section(title: str, bugs: Sequence[Bug]) -> str:
    if not bugs:
        return f"*{title}*: none :tada:"
    lines = [f"*{title}* ({len(bugs)})"]
    lines.extend(_bug_line(bug) for bug in sorted(bugs, key=lambda item: item.id))
    return "\n".join(lines)


async def blocker_bugs(client: TrackerClient, components: Sequence[str]) -> str:
    bugs = await client.search(SearchQuery(component=tuple(components), status=OPEN_STATUSES, flags=("blocker+",)))
    return _section("Blocker bugs", bugs)


async def incoming_bugs(client: TrackerClient, components: Sequence[str]) -> str:
    since = _hour_floor() - timedelta(days=1)
    bugs = await client.search(SearchQuery(component=tuple(components), status=("NEW",), created_after=since))
    return _section("Incoming bugs in the last 24h", bugs)


async def incoming_stats(client: TrackerClient, components: Sequence[str]) -> str:
    since = _hour_floor() - timedelta(days=7)
    bugs = await client.search(SearchQuery(component=tuple(components), created_after=since))
    day_ago = _hour_floor() - timedelta(days=1)
    last_day = [bug for bug in bugs if bug.creation_time is not None and bug.creation_time >= day_ago]
    per_component = Counter(name for bug in bugs for name in bug.component)
    lines = [
        "*Incoming bug stats*",
        f"Last 24h: {len(last_day)}",
        f"Last 7 days: {len(bugs)}",
    ]
    lines.extend(f"• {name}: {count}" for name, count in sorted(per_component.items()))
    return "\n".join(lines)


async def closed_bugs(client: TrackerClient, components: Sequence[str]) -> str:
    since = _hour_floor() - timedelta(days=1)
    bugs = await client.search(SearchQuery(component=tuple(components), status=("CLOSED",), changed_after=since))
    by_resolution: dict[str, list[Bug]] = defaultdict(list)
    for bug in bugs:
        by_resolution[bug.resolution or "UNKNOWN"].append(bug)
    if not by_resolution:
        return "*Bugs closed in the last 24h*: none"
    return "\n\n".join(_section(f"Closed as {resolution}", by_resolution[resolution]) for resolution in sorted(by_resolution))


async def upcoming_sprint(client: TrackerClient, components: Sequence[str]) -> str:
    bugs = await client.search(SearchQuery(component=tuple(components), status=OPEN_STATUSES, keywords=("UpcomingSprint",)))
    by_owner: dict[str, list[Bug]] = defaultdict(list)
    for bug in bugs:
        by_owner[bug.assigned_to or "unassigned"].append(bug)
    if not by_owner:
        return "*Upcoming sprint*: no bugs planned"
    return "\n\n".join(_section(f"Upcoming sprint for {owner}", by_owner[owner]) for owner in sorted(by_owner))


BUILTIN_REPORTS: dict[str, ReportFunction] = {
    "blocker-bugs": blocker_bugs,
    "closed-bugs": closed_bugs,
    "incoming-bugs": incoming_bugs,
    "incoming-stats": incoming_stats,
    "upcoming-sprint": upcoming_sprint,
}


def report_factories(reports: Mapping[str, ReportFunction] | None = None) -> dict[str, ReportFactory]:
    """Registration table mapping report name to its job constructor."""
    table = BUILTIN_REPORTS if reports is None else reports
    return {name: partial(ScheduledReport, report=function) for name, function in table.items()}
