"""Notification publisher — a capability handed to the engines.

Two backends:
  - QueuePublisher: in-process asyncio.Queue outbox (default). OutboxRelay
    drains it into RedisPublisher; tests read it with drain().
  - RedisPublisher: Redis Pub/Sub, one channel per target

A failing backend never undoes committed state: publish_all logs a warning
and moves on.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from config.settings import settings
from src.pe_common.redis_client import get_redis
from src.pe_notify.domain.events import DomainEvent

logger = logging.getLogger(__name__)


class PublisherProtocol(Protocol):
    async def publish(self, event: str, payload: dict[str, Any], target: str) -> None: ...


class QueuePublisher:
    """Outbox backed by an asyncio.Queue. Consumers drain it with get()."""

    def __init__(self, maxsize: int = 10_000) -> None:
        self.queue: asyncio.Queue[tuple[str, dict[str, Any], str]] = asyncio.Queue(maxsize)

    async def publish(self, event: str, payload: dict[str, Any], target: str) -> None:
        self.queue.put_nowait((event, payload, target))

    def drain(self) -> list[tuple[str, dict[str, Any], str]]:
        items = []
        while not self.queue.empty():
            items.append(self.queue.get_nowait())
        return items


class RedisPublisher:
    def __init__(self, channel_prefix: str | None = None) -> None:
        self._prefix = channel_prefix or settings.NOTIFY_CHANNEL_PREFIX

    def channel_for(self, target: str) -> str:
        return f"{self._prefix}:{target}"

    async def publish(self, event: str, payload: dict[str, Any], target: str) -> None:
        redis = await get_redis()
        message = json.dumps({"event": event, "payload": payload}, default=str)
        await redis.publish(self.channel_for(target), message)


async def publish_all(publisher: PublisherProtocol, events: list[DomainEvent]) -> None:
    for ev in events:
        for target in ev.targets:
            try:
                await publisher.publish(ev.topic, ev.payload, target)
            except Exception:
                logger.warning(
                    "Failed to publish %s to %s", ev.topic, target, exc_info=True
                )


_publisher: PublisherProtocol | None = None


def get_publisher() -> PublisherProtocol:
    """Module-level singleton selected by NOTIFY_BACKEND."""
    global _publisher  # noqa: PLW0603
    if _publisher is None:
        if settings.NOTIFY_BACKEND == "redis":
            _publisher = RedisPublisher()
        else:
            _publisher = QueuePublisher()
    return _publisher
