"""OutboxRelay — forwards the in-process outbox to the external sink.

Engines publish into a QueuePublisher without waiting on the network; this
task drains it in the app's event loop and hands each event to the sink
(RedisPublisher in production). A failing sink costs that one event, the same
contract publish_all gives a failing backend.
"""

import asyncio
import contextlib
import logging
from typing import Any

from src.pe_notify.publisher import PublisherProtocol, QueuePublisher, RedisPublisher

logger = logging.getLogger(__name__)


class OutboxRelay:
    def __init__(
        self,
        outbox: QueuePublisher,
        sink: PublisherProtocol | None = None,
    ) -> None:
        self._outbox = outbox
        self._sink = sink if sink is not None else RedisPublisher()
        self._task: asyncio.Task[None] | None = None
        self.forwarded = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="notify-outbox-relay")
        logger.info("Notification outbox relay started")

    async def stop(self) -> None:
        """Cancel the loop, then flush whatever is still queued."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        flushed = await self.flush()
        logger.info("Notification outbox relay stopped (flushed %d)", flushed)

    async def flush(self) -> int:
        sent = 0
        for item in self._outbox.drain():
            if await self._forward(*item):
                sent += 1
        return sent

    async def _forward(self, event: str, payload: dict[str, Any], target: str) -> bool:
        try:
            await self._sink.publish(event, payload, target)
        except Exception:
            logger.warning("Relay failed to forward %s to %s", event, target, exc_info=True)
            return False
        self.forwarded += 1
        return True

    async def _run(self) -> None:
        queue = self._outbox.queue
        while True:
            item = await queue.get()
            try:
                await self._forward(*item)
            finally:
                queue.task_done()
