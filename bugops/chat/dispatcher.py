"""Chat command dispatch for manual job triggering and reports."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from bugops.chat.auth import GroupAuthorizer
from bugops.errors import JobBusyError, UnknownJobError
from bugops.jobs.models import ExecutionMode
from bugops.jobs.registry import JobHandle, JobRegistry
from bugops.notify import Recorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChatRequest:
    """One command delivered by the chat transport."""

    command: str
    argument: str
    user: str
    channel: str


@dataclass(slots=True)
class CommandResult:
    status: str
    message: str | None = None
    elapsed: float | None = None


class ResponseWriter(Protocol):
    async def reply(self, text: str) -> None: ...

    async def reply_ephemeral(self, text: str) -> None: ...


def parse_command(text: str, *, user: str, channel: str) -> ChatRequest:
    """Split ``[admin] <command> <argument>`` into a request."""
    words = text.strip().split()
    if words and words[0].lower() == "admin":
        words = words[1:]
    command = words[0].lower() if words else ""
    argument = " ".join(words[1:])
    return ChatRequest(command=command, argument=argument, user=user, channel=channel)


class CommandDispatcher:
    """Resolve chat commands against the registry and run them.

    ``trigger`` and ``debug`` require membership of the admin group;
    ``report`` is open to everybody. Failures never propagate: report
    errors go back to the requester, job errors go to the recorder.
    """

    def __init__(
        self,
        registry: JobRegistry,
        *,
        recorder: Recorder,
        authorizer: GroupAuthorizer,
        shutdown: asyncio.Event,
        admin_group: str = "admins",
    ) -> None:
        self.registry = registry
        self.recorder = recorder
        self.authorizer = authorizer
        self.shutdown = shutdown
        self.admin_group = admin_group
        self._handlers: dict[str, Callable[[ChatRequest, ResponseWriter], Awaitable[CommandResult]]] = {
            "trigger": self._trigger,
            "debug": self._debug,
            "report": self._report,
            "say": self._say,
            "help": self._help,
        }

    def descriptions(self) -> dict[str, str]:
        controllers = self.registry.controller_names()
        reports = self.registry.report_names()
        return {
            "trigger <job>": f"Trigger a job to run: {', '.join(controllers)}",
            "debug <job>": f"Trigger a job to run in debug mode: {', '.join(controllers + reports)}",
            "report <job>": f"Run a report and print result here: {', '.join(reports)}",
            "say <message>": "Say something.",
        }

    async def handle(self, request: ChatRequest, writer: ResponseWriter) -> CommandResult:
        handler = self._handlers.get(request.command)
        if handler is None:
            await self._send(writer.reply, "Unknown command")
            return CommandResult(status="unknown_command")
        try:
            return await handler(request, writer)
        except Exception as exc:
            logger.exception("command_failed command=%s user=%s error=%s", request.command, request.user, exc)
            return CommandResult(status="failed", message=str(exc))

    async def _say(self, request: ChatRequest, writer: ResponseWriter) -> CommandResult:
        await self._send(writer.reply, request.argument)
        return CommandResult(status="ok")

    async def _help(self, request: ChatRequest, writer: ResponseWriter) -> CommandResult:
        lines = [f"`{usage}`: {text}" for usage, text in self.descriptions().items()]
        await self._send(writer.reply_ephemeral, "\n".join(lines))
        return CommandResult(status="ok")

    async def _trigger(self, request: ChatRequest, writer: ResponseWriter) -> CommandResult:
        return await self._run_job(request, writer, ExecutionMode.PRODUCTION, self.registry.controller)

    async def _debug(self, request: ChatRequest, writer: ResponseWriter) -> CommandResult:
        return await self._run_job(request, writer, ExecutionMode.DEBUG, self.registry.debuggable)

    async def _run_job(
        self,
        request: ChatRequest,
        writer: ResponseWriter,
        mode: ExecutionMode,
        resolve: Callable[[str], JobHandle],
    ) -> CommandResult:
        if not await self._authorized(request):
            await self._send(writer.reply_ephemeral, "You are not authorized to run this command.")
            return CommandResult(status="unauthorized")
        job = request.argument
        try:
            handle = resolve(job)
        except UnknownJobError:
            await self._send(writer.reply, f"Unknown job {job!r}")
            return CommandResult(status="unknown_job")

        suffix = " in debug mode" if mode is ExecutionMode.DEBUG else ""
        await self._send(writer.reply_ephemeral, f"Triggering job {job!r}{suffix}")
        logger.info("manual_run_start job=%s mode=%s user=%s", job, mode.value, request.user)
        try:
            elapsed = await handle.run(mode, recorder=self.recorder, shutdown=self.shutdown)
        except JobBusyError:
            await self._send(writer.reply_ephemeral, f"Job {job!r} is already running, try again later")
            return CommandResult(status="busy")
        except Exception as exc:
            logger.error("manual_run_failed job=%s mode=%s error=%s", job, mode.value, exc)
            await self.recorder.warning("ReportError", f"Job {job!r} reported error: {exc}")
            return CommandResult(status="failed", message=str(exc))
        await self._send(writer.reply_ephemeral, f"Finished job {job!r} after {_format_elapsed(elapsed)}")
        return CommandResult(status="ok", elapsed=elapsed)

    async def _report(self, request: ChatRequest, writer: ResponseWriter) -> CommandResult:
        job = request.argument
        try:
            handle = self.registry.report(job)
        except UnknownJobError:
            await self._send(writer.reply, f"Unknown report {job!r}")
            return CommandResult(status="unknown_report")

        await self._send(writer.reply_ephemeral, f"Running job {job!r}. This might take some seconds.")
        try:
            text, elapsed = await handle.render(recorder=self.recorder, shutdown=self.shutdown)
        except JobBusyError:
            await self._send(writer.reply_ephemeral, f"Report {job!r} is already running, try again later")
            return CommandResult(status="busy")
        except Exception as exc:
            logger.warning("report_failed report=%s error=%s", job, exc)
            await self._send(writer.reply_ephemeral, f"Error running report {job}: {exc}")
            return CommandResult(status="failed", message=str(exc))
        await self._send(writer.reply, text)
        return CommandResult(status="ok", message=text, elapsed=elapsed)

    async def _authorized(self, request: ChatRequest) -> bool:
        try:
            return await self.authorizer.is_member(request.user, self.admin_group)
        except Exception as exc:
            logger.error("authorization_failed user=%s error=%s", request.user, exc)
            return False

    @staticmethod
    async def _send(send: Callable[[str], Awaitable[None]], text: str) -> None:
        try:
            await send(text)
        except Exception as exc:
            logger.error("reply_failed error=%s", exc)


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, rest = divmod(round(seconds), 60)
    return f"{minutes}m{rest}s"
