"""The agentic turn cycle: stream a turn, run requested tools, feed results back."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator

from ..errors import AbortedError
from ..models import Conversation, ContentBlock, Message, ToolResultBlock, ToolUseBlock
from ..tools import ToolRegistry, ToolResult
from .ai_service import AIService
from .storage import ConversationStore

logger = logging.getLogger(__name__)

MAX_TURNS = 20

_CANCELLED_OUTPUT = "Cancelled by user"


@dataclass
class AgentEvent:
    kind: str
    data: dict[str, Any]


def _cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def run_agent_loop(
    ai_service: AIService,
    store: ConversationStore,
    conversation: Conversation,
    tool_registry: ToolRegistry,
    cancel_event: asyncio.Event | None = None,
    max_turns: int = MAX_TURNS,
) -> AsyncGenerator[AgentEvent, None]:
    """Run model turns until one contains no tool_use blocks or ``max_turns`` is hit.

    The conversation must already end with the user's message. It is saved
    after every assistant turn and every tool-result turn. Cancellation raises
    AbortedError; tools already running are allowed to finish first, and any
    tool_use left unanswered gets a "Cancelled by user" error result so the
    stored transcript stays well formed.
    """
    tools = tool_registry.get_tool_schemas()
    turn = 0
    last_message: Message | None = None

    while turn < max_turns:
        if _cancelled(cancel_event):
            raise AbortedError()
        turn += 1
        yield AgentEvent(kind="stream-start", data={"turn": turn})

        blocks: list[ContentBlock] = []
        async for event in ai_service.stream_turn(
            conversation.messages,
            tools=tools,
            model=conversation.model,
            cancel_event=cancel_event,
        ):
            if event["event"] == "message":
                blocks = event["data"]["content"]
            else:
                yield AgentEvent(kind=event["event"], data=event["data"])

        last_message = Message(role="assistant", content=blocks)
        conversation.append(last_message)
        store.save(conversation)

        tool_uses = last_message.tool_uses()
        if not tool_uses:
            yield AgentEvent(
                kind="stream-done",
                data={"message": last_message.model_dump(mode="json"), "turns": turn, "turn_limit_reached": False},
            )
            return

        results: list[ToolResultBlock] = []
        for tool_use in tool_uses:
            if _cancelled(cancel_event):
                result = ToolResult(output=_CANCELLED_OUTPUT, is_error=True)
            else:
                yield AgentEvent(
                    kind="tool-executing",
                    data={"tool_use_id": tool_use.id, "name": tool_use.name, "input": tool_use.input},
                )
                result = await tool_registry.execute(tool_use.name, tool_use.input)
            yield _tool_result_event(tool_use, result)
            results.append(ToolResultBlock(tool_use_id=tool_use.id, content=result.output, is_error=result.is_error))

        conversation.append(Message(role="user", content=results))
        store.save(conversation)

    logger.info("Conversation %s stopped after reaching the %d-turn limit", conversation.id, max_turns)
    yield AgentEvent(
        kind="stream-done",
        data={
            "message": last_message.model_dump(mode="json") if last_message else None,
            "turns": turn,
            "turn_limit_reached": True,
        },
    )


def _tool_result_event(tool_use: ToolUseBlock, result: ToolResult) -> AgentEvent:
    return AgentEvent(
        kind="tool-result",
        data={
            "tool_use_id": tool_use.id,
            "name": tool_use.name,
            "output": result.output,
            "is_error": result.is_error,
        },
    )
