"""Recurring execution loops, one per enabled job."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from bugops.errors import JobBusyError
from bugops.jobs.models import ExecutionMode
from bugops.jobs.registry import JobHandle, JobRegistry
from bugops.notify import Recorder

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRunner:
    """Runs every enabled scheduled job on its own asyncio task.

    A loop waits for its next trigger or for the shutdown event, whichever
    comes first. A trigger that fires while the same job is still running
    (for example a manual trigger) is skipped, not queued. Shutdown is only
    observed between runs, so an in-flight run always completes.
    """

    def __init__(
        self,
        registry: JobRegistry,
        recorder: Recorder,
        *,
        disabled: Iterable[str] = (),
        min_interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.registry = registry
        self.recorder = recorder
        self.disabled = set(disabled)
        self.min_interval = timedelta(seconds=max(0.0, float(min_interval_seconds)))
        self._clock = clock
        self._shutdown = asyncio.Event()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self.skipped: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def enabled_handles(self) -> list[JobHandle]:
        handles = []
        for handle in self.registry.schedulable():
            if self.registry.is_disabled(handle, self.disabled):
                logger.info("job_disabled job=%s", handle.name)
                continue
            if handle.job.schedule is None:
                logger.info("job_unscheduled job=%s", handle.name)
                continue
            handles.append(handle)
        return handles

    def start(self, shutdown: asyncio.Event) -> None:
        """Start one loop per enabled job; they stop when *shutdown* is set."""
        if self._tasks:
            raise RuntimeError("JobRunner already started")
        self._shutdown = shutdown
        for handle in self.enabled_handles():
            self._tasks[handle.name] = asyncio.create_task(self._loop(handle), name=f"bugops-job:{handle.name}")
        logger.info("runner_started jobs=%s", sorted(self._tasks))

    async def stop(self) -> None:
        """Signal shutdown and wait for every loop to finish its current run."""
        self._shutdown.set()
        tasks = list(self._tasks.values())
        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for name, result in zip(list(self._tasks), results):
                if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                    logger.error("runner_loop_crashed job=%s error=%s", name, result)
        self._tasks = {}
        logger.info("runner_stopped")

    async def run_once(self, handle: JobHandle, mode: ExecutionMode = ExecutionMode.PRODUCTION) -> bool:
        """Run *handle* once, recording failures. Returns True on success."""
        try:
            elapsed = await handle.run(mode, recorder=self.recorder, shutdown=self._shutdown)
        except JobBusyError:
            self.skipped[handle.name] = self.skipped.get(handle.name, 0) + 1
            logger.info("job_run_skipped job=%s reason=already_running", handle.name)
            return False
        except Exception as exc:
            logger.error("job_run_failed job=%s mode=%s error=%s", handle.name, mode.value, exc)
            await self.recorder.warning("JobFailed", f"Job {handle.name!r} failed: {exc}")
            return False
        logger.info("job_run_complete job=%s mode=%s duration_seconds=%.3f", handle.name, mode.value, elapsed)
        return True

    def next_delay(self, handle: JobHandle, last_run: datetime | None) -> float:
        schedule = handle.job.schedule
        assert schedule is not None
        now = self._clock()
        due = schedule.next_run(now, last_run)
        if last_run is not None:
            due = max(due, last_run + self.min_interval)
        return max(0.0, (due - now).total_seconds())

    async def _loop(self, handle: JobHandle) -> None:
        last_run: datetime | None = None
        while not self._shutdown.is_set():
            if await self._wait(self.next_delay(handle, last_run)):
                break
            last_run = self._clock()
            await self.run_once(handle)
        logger.debug("job_loop_exit job=%s", handle.name)

    async def _wait(self, delay: float) -> bool:
        """Sleep *delay* seconds; True when shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return self._shutdown.is_set()
        return True

    def status(self) -> dict[str, Any]:
        return {
            handle.name: {
                "scheduled": handle.name in self._tasks,
                "busy": handle.busy,
                "runs": handle.runs,
                "failures": handle.failures,
                "skipped": self.skipped.get(handle.name, 0),
                "last_error": handle.last_error,
            }
            for handle in self.registry.schedulable()
        }
