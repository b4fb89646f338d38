"""Line-oriented chat transport for running the operator from a terminal."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Any, TextIO

from bugops.chat.dispatcher import ChatRequest, CommandDispatcher, parse_command

logger = logging.getLogger(__name__)


class ConsoleTransport:
    """ChatTransport writing every message to a text stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self._lock = threading.Lock()

    async def post_message(self, channel: str, text: str, *, ephemeral_user: str | None = None) -> None:
        target = f"{channel} (only {ephemeral_user})" if ephemeral_user else channel
        with self._lock:
            self.stream.write(f"[{target}] {text}\n")
            self.stream.flush()


class ConsoleResponseWriter:
    def __init__(self, transport: ConsoleTransport, request: ChatRequest) -> None:
        self._transport = transport
        self._request = request

    async def reply(self, text: str) -> None:
        await self._transport.post_message(self._request.channel, text)

    async def reply_ephemeral(self, text: str) -> None:
        await self._transport.post_message(self._request.channel, text, ephemeral_user=self._request.user)


class ConsoleListener:
    """Reads one command per line and handles each in its own task.

    Input is read on a daemon thread so a blocked read never delays
    shutdown. End of input sets the shutdown event when *stop_on_eof*.
    """

    def __init__(
        self,
        transport: ConsoleTransport,
        *,
        stream: TextIO | None = None,
        user: str = "console",
        channel: str = "#console",
        stop_on_eof: bool = True,
    ) -> None:
        self.transport = transport
        self.stream = stream or sys.stdin
        self.user = user
        self.channel = channel
        self.stop_on_eof = stop_on_eof

    async def serve(self, dispatcher: CommandDispatcher, shutdown: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[str | None] = asyncio.Queue()
        threading.Thread(target=self._pump, args=(loop, lines), name="bugops-console", daemon=True).start()

        inflight: set[asyncio.Task[Any]] = set()
        stopping = asyncio.create_task(shutdown.wait())
        try:
            while True:
                getter = asyncio.create_task(lines.get())
                done, _ = await asyncio.wait({getter, stopping}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break
                line = getter.result()
                if line is None:
                    if self.stop_on_eof:
                        shutdown.set()
                    break
                if not line.strip():
                    continue
                request = parse_command(line, user=self.user, channel=self.channel)
                task = asyncio.create_task(dispatcher.handle(request, ConsoleResponseWriter(self.transport, request)))
                inflight.add(task)
                task.add_done_callback(inflight.discard)
        finally:
            stopping.cancel()
            if inflight:
                await asyncio.gather(*inflight, return_exceptions=True)
        logger.info("console_listener_stopped")

    def _pump(self, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str | None]) -> None:
        try:
            for line in iter(self.stream.readline, ""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, None)
        except RuntimeError:
            # event loop already closed
            return
