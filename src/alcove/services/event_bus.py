"""In-process pub/sub for chat progress notifications."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

GLOBAL_CHANNEL = "global"


def conversation_channel(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


class EventBus:
    """Fan-out of events to per-channel subscriber queues.

    Each subscriber gets its own unbounded queue, so events reach every
    listener exactly once and in publish order.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)

    def subscribe(self, channel: str) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._subscribers[channel].append(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        queues = self._subscribers.get(channel)
        if not queues:
            return
        try:
            queues.remove(queue)
        except ValueError:
            return
        if not queues:
            del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    async def publish(self, channel: str, event: dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(channel, ())):
            queue.put_nowait(event)
