"""Reduce one model turn (SSE stream or plain JSON) into completed content blocks.

The decoder is a small state machine keyed on the block ``index``. Text and
thinking deltas are forwarded upward as they arrive; tool input JSON is
accumulated as a string and parsed exactly once, when its block stops.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncGenerator, AsyncIterator

from ..errors import ProtocolError
from ..models import ContentBlock, TextBlock, ThinkingBlock, ToolUseBlock

logger = logging.getLogger(__name__)

_STREAMED_BLOCK_TYPES = ("text", "thinking", "tool_use")
_DELTA_FIELDS = {"text_delta": ("text", "text"), "thinking_delta": ("thinking", "thinking")}


class SseEventKind(Enum):
    MESSAGE_START = "message_start"
    CONTENT_BLOCK_START = "content_block_start"
    CONTENT_BLOCK_DELTA = "content_block_delta"
    CONTENT_BLOCK_STOP = "content_block_stop"
    MESSAGE_DELTA = "message_delta"
    MESSAGE_STOP = "message_stop"
    PING = "ping"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> SseEventKind:
        try:
            kind = cls(value)
        except ValueError:
            return cls.UNKNOWN
        return kind


@dataclass
class _OpenBlock:
    block_type: str
    fragments: list[str] = field(default_factory=list)
    tool_id: str = ""
    tool_name: str = ""
    initial_input: dict[str, Any] = field(default_factory=dict)


def _notification(kind: str, **data: Any) -> dict[str, Any]:
    return {"event": kind, "data": data}


def parse_tool_input(raw: str, fallback: dict[str, Any] | None = None) -> dict[str, Any]:
    """Parse accumulated tool input JSON; anything that is not a JSON object becomes ``{}``."""
    if not raw.strip():
        return dict(fallback or {})
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Tool input is not valid JSON (%d chars); using empty input", len(raw))
        return {}
    return value if isinstance(value, dict) else {}


class StreamDecoder:
    """Accumulates content blocks for a single turn.

    ``feed`` takes one decoded SSE payload and returns the progress
    notifications it produced, in order. ``finish`` returns the completed
    blocks once the stream has ended.
    """

    def __init__(self) -> None:
        self.blocks: list[ContentBlock] = []
        self.stop_reason: str | None = None
        self.finished = False
        self.unknown_events: list[str] = []
        self._open: dict[int, _OpenBlock] = {}

    def feed(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        kind = SseEventKind.parse(payload.get("type"))

        if kind is SseEventKind.CONTENT_BLOCK_START:
            return self._start_block(payload)
        elif kind is SseEventKind.CONTENT_BLOCK_DELTA:
            return self._apply_delta(payload)
        elif kind is SseEventKind.CONTENT_BLOCK_STOP:
            return self._stop_block(payload)
        elif kind is SseEventKind.MESSAGE_DELTA:
            delta = payload.get("delta") or {}
            if isinstance(delta, dict) and delta.get("stop_reason"):
                self.stop_reason = delta["stop_reason"]
            self.finished = True
        elif kind is SseEventKind.MESSAGE_STOP:
            self.finished = True
        elif kind in (SseEventKind.MESSAGE_START, SseEventKind.PING):
            pass
        elif kind is SseEventKind.ERROR:
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProtocolError(f"Proxy reported a stream error: {message or 'unknown error'}")
        else:
            event_type = str(payload.get("type"))
            logger.warning("Ignoring unknown stream event type %r", event_type)
            self.unknown_events.append(event_type)
        return []

    def _start_block(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        index = payload.get("index")
        block = payload.get("content_block") or {}
        block_type = block.get("type") if isinstance(block, dict) else None
        if not isinstance(index, int) or block_type not in _STREAMED_BLOCK_TYPES:
            logger.debug("Skipping unsupported content_block_start: %r", payload)
            return []

        if block_type == "tool_use":
            initial = block.get("input")
            opened = _OpenBlock(
                block_type=block_type,
                tool_id=str(block.get("id", "")),
                tool_name=str(block.get("name", "")),
                initial_input=initial if isinstance(initial, dict) else {},
            )
            self._open[index] = opened
            return [
                _notification(
                    "block-start",
                    index=index,
                    block_type=block_type,
                    tool_id=opened.tool_id,
                    tool_name=opened.tool_name,
                )
            ]

        opened = _OpenBlock(block_type=block_type)
        self._open[index] = opened
        events = [_notification("block-start", index=index, block_type=block_type)]
        seed = block.get(block_type)
        if isinstance(seed, str) and seed:
            opened.fragments.append(seed)
            events.append(_notification("block-delta", index=index, block_type=block_type, text=seed))
        return events

    def _apply_delta(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        index = payload.get("index")
        delta = payload.get("delta") or {}
        opened = self._open.get(index) if isinstance(index, int) else None
        if opened is None or not isinstance(delta, dict):
            logger.debug("Skipping delta for unopened block %r", index)
            return []

        delta_type = delta.get("type")
        if delta_type == "input_json_delta":
            if opened.block_type == "tool_use":
                opened.fragments.append(str(delta.get("partial_json", "")))
            return []

        expected = _DELTA_FIELDS.get(delta_type)
        if expected is None or expected[0] != opened.block_type:
            logger.debug("Skipping %r delta for %s block", delta_type, opened.block_type)
            return []
        fragment = delta.get(expected[1])
        if not isinstance(fragment, str) or not fragment:
            return []
        opened.fragments.append(fragment)
        return [_notification("block-delta", index=index, block_type=opened.block_type, text=fragment)]

    def _stop_block(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        index = payload.get("index")
        opened = self._open.pop(index, None) if isinstance(index, int) else None
        if opened is None:
            logger.debug("Skipping stop for unopened block %r", index)
            return []

        joined = "".join(opened.fragments)
        if opened.block_type == "tool_use":
            tool_input = parse_tool_input(joined, opened.initial_input)
            self.blocks.append(ToolUseBlock(id=opened.tool_id, name=opened.tool_name, input=tool_input))
            return [
                _notification(
                    "block-stop",
                    index=index,
                    block_type="tool_use",
                    tool_id=opened.tool_id,
                    tool_name=opened.tool_name,
                    input=tool_input,
                )
            ]
        if opened.block_type == "thinking":
            self.blocks.append(ThinkingBlock(thinking=joined))
        else:
            self.blocks.append(TextBlock(text=joined))
        return [_notification("block-stop", index=index, block_type=opened.block_type)]

    def feed_document(self, document: Any) -> list[dict[str, Any]]:
        """Non-streaming path: build blocks straight from a JSON reply's ``content`` list."""
        if not isinstance(document, dict) or not isinstance(document.get("content"), list):
            raise ProtocolError("Proxy reply has no content block list")

        events: list[dict[str, Any]] = []
        for index, block in enumerate(document["content"]):
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                text = str(block.get("text", ""))
                self.blocks.append(TextBlock(text=text))
                events.append(_notification("block-delta", index=index, block_type="text", text=text))
            elif block_type == "thinking":
                self.blocks.append(ThinkingBlock(thinking=str(block.get("thinking", ""))))
            elif block_type == "tool_use":
                tool_input = block.get("input")
                self.blocks.append(
                    ToolUseBlock(
                        id=str(block.get("id", "")),
                        name=str(block.get("name", "")),
                        input=tool_input if isinstance(tool_input, dict) else {},
                    )
                )
            else:
                logger.debug("Skipping unsupported block type %r in JSON reply", block_type)
        self.stop_reason = document.get("stop_reason")
        self.finished = True
        return events

    def finish(self) -> list[ContentBlock]:
        if self._open:
            pending = sorted(self._open)
            raise ProtocolError(f"Stream ended with unfinished content blocks at index {pending}")
        return list(self.blocks)


def _parse_payload(event_name: str, data_lines: list[str]) -> dict[str, Any] | None:
    data = "\n".join(data_lines).strip()
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE data: %.200s", data)
        return None
    if not isinstance(payload, dict):
        return None
    if "type" not in payload and event_name:
        payload["type"] = event_name
    return payload


async def iter_sse_payloads(lines: AsyncIterator[str]) -> AsyncGenerator[dict[str, Any], None]:
    """Frame raw SSE lines into JSON payloads, dropping comments and unparseable data."""
    event_name = ""
    data_lines: list[str] = []

    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data_lines:
                payload = _parse_payload(event_name, data_lines)
                if payload is not None:
                    yield payload
            event_name, data_lines = "", []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            if data_lines:
                payload = _parse_payload(event_name, data_lines)
                if payload is not None:
                    yield payload
                data_lines = []
            event_name = value
        elif name == "data":
            data_lines.append(value)

    if data_lines:
        payload = _parse_payload(event_name, data_lines)
        if payload is not None:
            yield payload


async def decode_sse(
    lines: AsyncIterator[str], decoder: StreamDecoder | None = None
) -> AsyncGenerator[dict[str, Any], None]:
    """Drive ``decoder`` from SSE lines, yielding progress notifications.

    The final event is ``{"event": "message", "data": {"content": blocks,
    "stop_reason": ...}}``.
    """
    decoder = decoder or StreamDecoder()
    async for payload in iter_sse_payloads(lines):
        for event in decoder.feed(payload):
            yield event
        if decoder.finished:
            break
    blocks = decoder.finish()
    yield _notification("message", content=blocks, stop_reason=decoder.stop_reason)
