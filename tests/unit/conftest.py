"""Shared fixtures: a temporary conversation store and a scripted stand-in for the proxy client."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest

from alcove.config import AIConfig
from alcove.errors import AbortedError
from alcove.models import ContentBlock, Message, TextBlock, ThinkingBlock, ToolUseBlock
from alcove.services.storage import ConversationStore


class ScriptedAIService:
    """Replays canned assistant turns through the same notification shape as AIService.stream_turn.

    Once the script runs out, the last turn repeats. With ``hang=True`` each
    turn blocks until its cancel event fires and then raises AbortedError.
    """

    def __init__(
        self,
        turns: list[list[ContentBlock]] | None = None,
        error: Exception | None = None,
        hang: bool = False,
    ) -> None:
        self.config = AIConfig(base_url="http://proxy.test", model="claude-test")
        self.turns = list(turns or [[TextBlock(text="ok")]])
        self.error = error
        self.hang = hang
        self.calls: list[dict[str, Any]] = []
        self.started = asyncio.Event()
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    async def stream_turn(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        self.calls.append({"messages": list(messages), "tools": tools, "model": model})
        self.started.set()
        if cancel_event is not None and cancel_event.is_set():
            raise AbortedError()
        if self.error is not None:
            raise self.error
        if self.hang:
            assert cancel_event is not None
            await cancel_event.wait()
            raise AbortedError()

        index = len(self.calls) - 1
        blocks = self.turns[min(index, len(self.turns) - 1)]
        for i, block in enumerate(blocks):
            if isinstance(block, ToolUseBlock):
                yield {
                    "event": "block-start",
                    "data": {"index": i, "block_type": "tool_use", "tool_id": block.id, "tool_name": block.name},
                }
                yield {
                    "event": "block-stop",
                    "data": {
                        "index": i,
                        "block_type": "tool_use",
                        "tool_id": block.id,
                        "tool_name": block.name,
                        "input": block.input,
                    },
                }
                continue
            block_type = "thinking" if isinstance(block, ThinkingBlock) else "text"
            text = block.thinking if isinstance(block, ThinkingBlock) else block.text
            yield {"event": "block-start", "data": {"index": i, "block_type": block_type}}
            yield {"event": "block-delta", "data": {"index": i, "block_type": block_type, "text": text}}
            yield {"event": "block-stop", "data": {"index": i, "block_type": block_type}}
        stop_reason = "tool_use" if any(isinstance(b, ToolUseBlock) for b in blocks) else "end_turn"
        yield {"event": "message", "data": {"content": list(blocks), "stop_reason": stop_reason}}


@pytest.fixture()
def store(tmp_path: Path) -> ConversationStore:
    return ConversationStore(tmp_path / "conversations")


@pytest.fixture()
def scripted_ai() -> type[ScriptedAIService]:
    return ScriptedAIService
