"""Job contract, execution modes and schedules."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

from croniter import croniter  # type: ignore[import-untyped]

from bugops.notify import ChannelClient, Recorder
from bugops.store import ConfigStore
from bugops.tracker.client import TrackerClient


class ExecutionMode(str, Enum):
    """How a run is allowed to affect the outside world."""

    PRODUCTION = "production"
    DEBUG = "debug"


@dataclass(frozen=True)
class JobContext:
    """Dependencies a job is constructed with.

    Both the production and the debug variants are injected so the mode of
    each run decides which one the job sees.
    """

    client: TrackerClient
    debug_client: TrackerClient
    channel: ChannelClient
    debug_channel: ChannelClient
    store: ConfigStore

    def client_for(self, mode: ExecutionMode) -> TrackerClient:
        return self.debug_client if mode is ExecutionMode.DEBUG else self.client

    def channel_for(self, mode: ExecutionMode) -> ChannelClient:
        return self.debug_channel if mode is ExecutionMode.DEBUG else self.channel

    def with_channel(self, channel: ChannelClient) -> JobContext:
        return JobContext(
            client=self.client,
            debug_client=self.debug_client,
            channel=channel,
            debug_channel=self.debug_channel,
            store=self.store,
        )


@dataclass(frozen=True)
class RunContext:
    """Everything one execution of a job may use."""

    job_name: str
    mode: ExecutionMode
    client: TrackerClient
    channel: ChannelClient
    recorder: Recorder
    store: ConfigStore
    shutdown: asyncio.Event
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def debug(self) -> bool:
        return self.mode is ExecutionMode.DEBUG


class Schedule(Protocol):
    def next_run(self, now: datetime, last_run: datetime | None) -> datetime: ...


@dataclass(frozen=True)
class IntervalSchedule:
    """Run right away, then every *seconds*."""

    seconds: float

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ValueError("interval must be > 0")

    def next_run(self, now: datetime, last_run: datetime | None) -> datetime:
        if last_run is None:
            return now
        return max(now, last_run + timedelta(seconds=self.seconds))


@dataclass(frozen=True)
class CronSchedule:
    """Run at the earliest upcoming match of any of *expressions*."""

    expressions: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.expressions:
            raise ValueError("cron schedule needs at least one expression")
        for expression in self.expressions:
            if not croniter.is_valid(expression):
                raise ValueError(f"Invalid cron expression: '{expression}'")

    def next_run(self, now: datetime, last_run: datetime | None) -> datetime:
        return min(croniter(expression, now).get_next(datetime) for expression in self.expressions)


class Job(Protocol):
    """A named unit of recurring or on-demand work."""

    name: str
    context: JobContext
    schedule: Schedule | None

    async def sync(self, run: RunContext) -> None: ...


class ReportJob(Protocol):
    """A job that can also render its report text without posting it."""

    name: str
    context: JobContext
    schedule: Schedule | None

    async def sync(self, run: RunContext) -> None: ...

    async def render(self, run: RunContext) -> str: ...
