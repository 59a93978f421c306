"""Chat streaming endpoint with SSE, plus stop/abort."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from ..errors import ChatError, ConversationBusyError, ConversationNotFoundError
from ..models import ChatRequest
from ..services.chat_controller import TERMINAL_EVENTS, ChatController
from ..services.event_bus import conversation_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

_background_tasks: set[asyncio.Task[None]] = set()


def _get_controller(request: Request) -> ChatController:
    return request.app.state.controller


async def drain_until_terminal(queue: asyncio.Queue[dict[str, Any]]) -> AsyncGenerator[dict[str, str], None]:
    """Relay bus events as SSE messages, stopping after stream-done or stream-error."""
    while True:
        event = await queue.get()
        yield {"event": event["type"], "data": json.dumps(event)}
        if event["type"] in TERMINAL_EVENTS:
            return


@router.post("/conversations/{conversation_id}/chat")
async def chat(conversation_id: str, body: ChatRequest, request: Request) -> EventSourceResponse:
    controller = _get_controller(request)
    if controller.store.get(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if controller.is_active(conversation_id):
        raise HTTPException(status_code=409, detail="A reply is already streaming for this conversation")

    channel = conversation_channel(conversation_id)
    queue = controller.event_bus.subscribe(channel)

    async def _run_send() -> None:
        try:
            await controller.send(conversation_id, body.message, model=body.model)
        except (ConversationBusyError, ConversationNotFoundError) as e:
            # Raised before anything was published; tell this subscriber directly.
            queue.put_nowait({"type": "stream-error", "conversation_id": conversation_id, "data": e.to_dict()})
        except ChatError as e:
            logger.debug("Chat %s ended with %s", conversation_id, e.code)
        except Exception:
            logger.debug("Chat %s ended with an internal error", conversation_id)

    task = asyncio.create_task(_run_send())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    async def event_generator() -> AsyncGenerator[dict[str, str], None]:
        try:
            async for message in drain_until_terminal(queue):
                yield message
        finally:
            controller.event_bus.unsubscribe(channel, queue)

    return EventSourceResponse(event_generator())


@router.post("/conversations/{conversation_id}/stop")
async def stop_generation(conversation_id: str, request: Request) -> dict[str, Any]:
    controller = _get_controller(request)
    if controller.store.get(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "stopped", "aborted": controller.abort(conversation_id)}


@router.post("/chat/abort")
async def abort_all(request: Request) -> dict[str, Any]:
    return {"status": "stopped", "aborted": _get_controller(request).abort()}
