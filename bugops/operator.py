"""Operator wiring: builds the job engine and runs it until shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

import yaml  # type: ignore[import-untyped]

from bugops.chat.auth import ConfigGroupAuthorizer, GroupAuthorizer
from bugops.chat.dispatcher import CommandDispatcher
from bugops.config.models import OperatorConfig
from bugops.errors import StartupError
from bugops.jobs.controllers import ControllerSettings, build_controllers
from bugops.jobs.models import Job, JobContext
from bugops.jobs.registry import JobRegistry, ReportFactory, build_registry
from bugops.jobs.reports import report_factories
from bugops.jobs.runner import JobRunner
from bugops.notify import ChannelClient, ChatTransport, Recorder
from bugops.store import ConfigStore
from bugops.tracker.cache import CachedTrackerClient, CacheStore
from bugops.tracker.client import TrackerClient
from bugops.tracker.debug import ReadOnlyDebugClient

logger = logging.getLogger(__name__)

SHUTDOWN_MESSAGE = ":crossed_fingers: *The bot is shutting down*"


class Listener(Protocol):
    """Inbound half of the chat platform."""

    async def serve(self, dispatcher: CommandDispatcher, shutdown: asyncio.Event) -> None: ...


class Operator:
    """Owns the shared cache, clients, registry, runner and dispatcher.

    Every collaborator is injected so tests can replace the tracker, chat
    transport and state store.
    """

    def __init__(
        self,
        config: OperatorConfig,
        *,
        tracker: TrackerClient,
        transport: ChatTransport,
        store: ConfigStore,
        listener: Listener | None = None,
        authorizer: GroupAuthorizer | None = None,
        controllers: Iterable[Job] | None = None,
        reports: Mapping[str, ReportFactory] | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.store = store
        self.listener = listener
        self.authorizer = authorizer or ConfigGroupAuthorizer(config.groups)

        admin = config.chat.admin_channel
        self.admin_channel = ChannelClient(transport, admin, admin)
        self.debug_channel = ChannelClient(transport, admin, admin, debug=True)
        self.recorder = Recorder(self.admin_channel, "BugzillaOperator")

        self.cache = CacheStore(
            config.cache.path,
            flush_interval_seconds=config.cache.flush_interval_seconds,
            max_age_seconds=config.cache.max_age_seconds,
        )
        self.client = CachedTrackerClient(tracker, self.cache)
        # report runs and debug triggers must never write to the tracker
        self.debug_client = ReadOnlyDebugClient(self.client, self.debug_channel)
        self.context = JobContext(
            client=self.client,
            debug_client=self.debug_client,
            channel=self.admin_channel,
            debug_channel=self.debug_channel,
            store=store,
        )

        if controllers is None:
            controllers = build_controllers(self.context, ControllerSettings.from_config(config))
        self.registry: JobRegistry = build_registry(
            controllers=controllers,
            schedules=config.schedules,
            components=config.components,
            report_factories=reports if reports is not None else report_factories(),
            context=self.context,
            channel_context=self._channel_context,
        )
        self.runner = JobRunner(
            self.registry,
            self.recorder,
            disabled=config.effective_disabled_jobs(),
            min_interval_seconds=config.runner.min_interval_seconds,
        )
        self.dispatcher: CommandDispatcher | None = None

    def _channel_context(self, channel: str) -> JobContext:
        client = ChannelClient(self.transport, channel, self.config.chat.admin_channel)
        return self.context.with_channel(client)

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run until *shutdown* is set.

        Raises:
            StartupError: the state store is unreachable; nothing was started.
        """
        try:
            await self.store.ping()
        except Exception as exc:
            raise StartupError(f"cannot reach configuration store: {exc}") from exc

        await self.cache.open()
        listener_task: asyncio.Task[None] | None = None
        try:
            await self.recorder.event(
                "OperatorStarted",
                f"Bugzilla Operator Started\n\n```\n{yaml.safe_dump(self.config.anonymize(), sort_keys=True)}```\n",
            )
            await self._warn_configuration()

            self.dispatcher = CommandDispatcher(
                self.registry,
                recorder=self.recorder,
                authorizer=self.authorizer,
                shutdown=shutdown,
                admin_group=self.config.chat.admin_group,
            )
            self.runner.start(shutdown)
            if self.listener is not None:
                listener_task = asyncio.create_task(
                    self.listener.serve(self.dispatcher, shutdown), name="bugops-chat-listener"
                )
            await shutdown.wait()
        finally:
            shutdown.set()
            await self.runner.stop()
            if listener_task is not None:
                await self._stop_listener(listener_task)
            await self.recorder.warning("Shutdown", SHUTDOWN_MESSAGE)
            await self.cache.close()
            logger.info("operator_stopped")

    async def _warn_configuration(self) -> None:
        for problem in self.registry.problems(self.config.disabled_jobs):
            await self.recorder.warning(problem.reason, str(problem))

    @staticmethod
    async def _stop_listener(task: asyncio.Task[None]) -> None:
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("listener_stop_timeout")
        except Exception as exc:
            logger.error("listener_failed error=%s", exc)
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def status(self) -> dict[str, Any]:
        stats = self.cache.stats
        return {
            "jobs": self.runner.status(),
            "registry": self.registry.describe(),
            "cache": {
                "entries": len(self.cache),
                "hits": stats.hits,
                "misses": stats.misses,
                "remote_calls": stats.remote_calls,
                "shared": stats.shared,
                "invalidations": stats.invalidations,
            },
        }
