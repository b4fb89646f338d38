"""Job registry: named controllers and report jobs built once at startup."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from bugops.config.models import ScheduleEntry
from bugops.errors import ConfigurationError, JobBusyError, UnknownJobError
from bugops.jobs.models import CronSchedule, ExecutionMode, Job, JobContext, ReportJob, RunContext, Schedule
from bugops.notify import Recorder

logger = logging.getLogger(__name__)

T = TypeVar("T")

ReportFactory = Callable[[str, JobContext, Sequence[str], Schedule | None], ReportJob]


class JobHandle:
    """Owns one job and guarantees at most one run of it is in flight.

    A run requested while another is active is rejected with JobBusyError,
    never queued.
    """

    def __init__(self, job: Job, *, name: str | None = None) -> None:
        self.job = job
        self.name = name or job.name
        self.runs = 0
        self.failures = 0
        self.last_error: str | None = None
        self.last_duration: float | None = None
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, mode: ExecutionMode, *, recorder: Recorder, shutdown: asyncio.Event) -> float:
        """Execute ``sync`` and return the elapsed seconds."""
        _, elapsed = await self._guarded(mode, recorder, shutdown, self.job.sync)
        return elapsed

    async def render(self, *, recorder: Recorder, shutdown: asyncio.Event) -> tuple[str, float]:
        """Produce report text through the debug client."""
        render = getattr(self.job, "render", None)
        if render is None:
            raise TypeError(f"job {self.name!r} does not produce a report")
        return await self._guarded(ExecutionMode.DEBUG, recorder, shutdown, render)

    async def _guarded(
        self,
        mode: ExecutionMode,
        recorder: Recorder,
        shutdown: asyncio.Event,
        body: Callable[[RunContext], Awaitable[T]],
    ) -> tuple[T, float]:
        if self._lock.locked():
            raise JobBusyError(self.name)
        async with self._lock:
            context = self.job.context
            run = RunContext(
                job_name=self.name,
                mode=mode,
                client=context.client_for(mode),
                channel=context.channel_for(mode),
                recorder=recorder,
                store=context.store,
                shutdown=shutdown,
            )
            self.runs += 1
            started = time.monotonic()
            try:
                result = await body(run)
            except Exception as exc:
                self.failures += 1
                self.last_error = str(exc)
                raise
            finally:
                self.last_duration = time.monotonic() - started
            self.last_error = None
            return result, self.last_duration


@dataclass
class JobRegistry:
    """Controllers, debug-invocable reports and per-channel scheduled reports.

    ``controllers`` and ``reports`` are keyed by job name; a name may appear
    in both because commands pick the namespace. Scheduled reports are
    replicated per channel and named ``<report>@<channel>``.
    """

    controllers: dict[str, JobHandle] = field(default_factory=dict)
    reports: dict[str, JobHandle] = field(default_factory=dict)
    scheduled_reports: list[JobHandle] = field(default_factory=list)
    unknown_reports: set[str] = field(default_factory=set)

    def add_controller(self, job: Job) -> JobHandle:
        if job.name in self.controllers:
            raise ValueError(f"controller {job.name!r} is already registered")
        handle = JobHandle(job)
        self.controllers[job.name] = handle
        return handle

    def add_report(self, job: ReportJob) -> JobHandle:
        if job.name in self.reports:
            raise ValueError(f"report {job.name!r} is already registered")
        handle = JobHandle(job)
        self.reports[job.name] = handle
        return handle

    def add_scheduled_report(self, job: ReportJob, channel: str) -> JobHandle:
        taken = {handle.name for handle in self.scheduled_reports}
        name = base = f"{job.name}@{channel}"
        suffix = 2
        while name in taken:
            name = f"{base}#{suffix}"
            suffix += 1
        handle = JobHandle(job, name=name)
        self.scheduled_reports.append(handle)
        return handle

    def controller(self, name: str) -> JobHandle:
        try:
            return self.controllers[name]
        except KeyError:
            raise UnknownJobError(name) from None

    def report(self, name: str) -> JobHandle:
        try:
            return self.reports[name]
        except KeyError:
            raise UnknownJobError(name) from None

    def debuggable(self, name: str) -> JobHandle:
        """Controllers win over reports of the same name."""
        handle = self.controllers.get(name) or self.reports.get(name)
        if handle is None:
            raise UnknownJobError(name)
        return handle

    def controller_names(self) -> list[str]:
        return sorted(self.controllers)

    def report_names(self) -> list[str]:
        return sorted(self.reports)

    def schedulable(self) -> list[JobHandle]:
        return [*self.controllers.values(), *self.scheduled_reports]

    @staticmethod
    def is_disabled(handle: JobHandle, disabled: set[str]) -> bool:
        return handle.name in disabled or handle.job.name in disabled

    def unknown_disabled(self, disabled: Iterable[str]) -> list[str]:
        """Disabled names that match no schedulable job."""
        known: set[str] = set()
        for handle in self.schedulable():
            known.update((handle.name, handle.job.name))
        return sorted(set(disabled) - known)

    def problems(self, disabled: Iterable[str]) -> list[ConfigurationError]:
        """Non-fatal configuration issues found while building the registry."""
        found = []
        if self.unknown_reports:
            found.append(ConfigurationError("UnknownReports", f"Unknown reports in config: {sorted(self.unknown_reports)}"))
        unknown = self.unknown_disabled(disabled)
        if unknown:
            found.append(ConfigurationError("UnknownDisabledJobs", f"Unknown disabled controllers in config: {unknown}"))
        return found

    def describe(self) -> dict[str, Any]:
        return {
            "controllers": self.controller_names(),
            "reports": self.report_names(),
            "scheduled_reports": [handle.name for handle in self.scheduled_reports],
        }


def build_registry(
    *,
    controllers: Iterable[Job],
    schedules: Sequence[ScheduleEntry],
    components: Sequence[str],
    report_factories: Mapping[str, ReportFactory],
    context: JobContext,
    channel_context: Callable[[str], JobContext],
) -> JobRegistry:
    """Assemble the registry.

    Controllers are registered first, then one report job per (schedule
    entry, report name). Unknown report names are skipped and collected in
    ``unknown_reports``. Each known report is also registered once, bound
    to *components* and without a schedule, for manual invocation.
    """
    registry = JobRegistry()
    for job in controllers:
        registry.add_controller(job)

    seen: list[str] = []
    for entry in schedules:
        entry_context = channel_context(entry.channel)
        schedule = CronSchedule(tuple(entry.when)) if entry.when else None
        for report_name in entry.reports:
            factory = report_factories.get(report_name)
            if factory is None:
                registry.unknown_reports.add(report_name)
                logger.warning("unknown_report name=%s channel=%s", report_name, entry.channel)
                continue
            job = factory(report_name, entry_context, entry.components, schedule)
            registry.add_scheduled_report(job, entry.channel)
            if report_name not in seen:
                seen.append(report_name)

    for report_name in seen:
        registry.add_report(report_factories[report_name](report_name, context, list(components), None))

    logger.info(
        "registry_built controllers=%s reports=%s scheduled=%d",
        registry.controller_names(),
        registry.report_names(),
        len(registry.scheduled_reports),
    )
    return registry
