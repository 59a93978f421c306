"""Long-lived SSE stream of chat events for every conversation."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from ..services.event_bus import GLOBAL_CHANNEL, conversation_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

_POLL_SECONDS = 1.0


@router.get("/events")
async def event_stream(request: Request, conversation_id: str | None = None) -> EventSourceResponse:
    """Subscribe to ``global``, or to a single conversation when ``conversation_id`` is given."""
    event_bus = request.app.state.controller.event_bus
    channel = conversation_channel(conversation_id) if conversation_id else GLOBAL_CHANNEL
    queue: asyncio.Queue[dict[str, Any]] = event_bus.subscribe(channel)

    async def generate() -> AsyncGenerator[dict[str, str], None]:
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=_POLL_SECONDS)
                except asyncio.TimeoutError:
                    continue
                yield {"event": event["type"], "data": json.dumps(event)}
        finally:
            event_bus.unsubscribe(channel, queue)
            logger.debug("Event stream for %s closed", channel)

    return EventSourceResponse(generate())
