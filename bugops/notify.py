"""Chat channel clients and the administrative event recorder."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)

DEBUG_PREFIX = "[DEBUG] "


class ChatTransport(Protocol):
    """Outbound half of the chat platform."""

    async def post_message(self, channel: str, text: str, *, ephemeral_user: str | None = None) -> None: ...


class ChannelClient:
    """Posts to one channel, or to the admin channel when in debug mode."""

    def __init__(
        self,
        transport: ChatTransport,
        channel: str,
        admin_channel: str,
        *,
        debug: bool = False,
    ) -> None:
        self.transport = transport
        self.channel = channel
        self.admin_channel = admin_channel
        self.debug = debug

    async def message_channel(self, text: str) -> None:
        if self.debug:
            await self.transport.post_message(self.admin_channel, f"{DEBUG_PREFIX}{text}")
            return
        await self.transport.post_message(self.channel, text)

    async def message_admin_channel(self, text: str) -> None:
        prefix = DEBUG_PREFIX if self.debug else ""
        await self.transport.post_message(self.admin_channel, f"{prefix}{text}")


class Recorder:
    """Single sink through which status and failures become visible.

    Every event is logged and posted to the admin channel. A failing
    transport is logged and never propagated to the caller.
    """

    def __init__(self, admin_client: ChannelClient, component: str) -> None:
        self._admin = admin_client
        self.component = component

    async def event(self, reason: str, text: str) -> None:
        logger.info("recorder_event component=%s reason=%s text=%s", self.component, reason, text)
        await self._post(reason, text)

    async def warning(self, reason: str, text: str) -> None:
        logger.warning("recorder_warning component=%s reason=%s text=%s", self.component, reason, text)
        await self._post(reason, f":warning: {text}")

    async def _post(self, reason: str, text: str) -> None:
        try:
            await self._admin.message_admin_channel(text)
        except Exception as exc:
            logger.exception(
                "recorder_post_failed component=%s reason=%s error=%s",
                self.component,
                reason,
                exc,
            )
