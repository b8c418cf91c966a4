"""Event router: runs one dispatcher invocation per queued webhook event.

The webhook endpoint only enqueues; this consumer does the work, one event
at a time. The delivery ID doubles as the correlation ID: it is handed to
the dispatched workflow, stamped on every log record emitted while the
event is processed, and used to build the ``/logs`` link in error replies.

An invocation that raises is logged and counted. It never stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from prbot.log_buffer import correlation_id_var
from prbot.models import CommentEvent, GitHubEvent

if TYPE_CHECKING:
    from prbot.config import BotConfig
    from prbot.dispatcher import CommentDispatcher

logger = logging.getLogger(__name__)


class EventRouter:
    def __init__(
        self,
        event_queue: asyncio.Queue[GitHubEvent],
        dispatcher: CommentDispatcher,
        config: BotConfig,
    ):
        self.event_queue = event_queue
        self.dispatcher = dispatcher
        self.config = config

        self.last_event_time: float | None = None
        self.failed_invocations = 0

        self._consumer: asyncio.Task | None = None

    async def start(self) -> None:
        self._consumer = asyncio.create_task(self._consume(), name="prbot-event-router")
        logger.info("Event router consuming")

    async def stop(self) -> None:
        if self._consumer is None:
            return
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None
        logger.info("Event router stopped with %d event(s) queued", self.event_queue.qsize())

    async def _consume(self) -> None:
        while True:
            event = await self.event_queue.get()
            try:
                await self.process(event)
            finally:
                self.event_queue.task_done()

    async def process(self, event: GitHubEvent) -> None:
        """Run one invocation, inside its failure and logging boundary."""
        token = correlation_id_var.set(event.delivery_id)
        try:
            await self._dispatch(event)
        except Exception:
            self.failed_invocations += 1
            logger.exception("Invocation for delivery %s failed", event.delivery_id)
        finally:
            correlation_id_var.reset(token)

    def log_url(self, correlation_id: str) -> str:
        return f"{self.config.server.public_url}/logs?correlation_id={correlation_id}"

    async def _dispatch(self, event: GitHubEvent) -> None:
        self.last_event_time = time.time()

        # The bot's own replies arrive as issue_comment events too
        if event.sender == self.config.project.bot_username:
            logger.debug("Skipping %s from the bot itself", event.full_type)
            return

        comment = CommentEvent.from_payload(event.payload, correlation_id=event.delivery_id)
        await self.dispatcher.handle(comment, log_url=self.log_url(event.delivery_id))
