"""Tests for SSE framing and the content-block state machine."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import pytest

from alcove.errors import ProtocolError
from alcove.models import TextBlock, ThinkingBlock, ToolUseBlock
from alcove.services.stream_decoder import (
    SseEventKind,
    StreamDecoder,
    decode_sse,
    iter_sse_payloads,
    parse_tool_input,
)


async def _lines(lines: list[str]) -> AsyncIterator[str]:
    for line in lines:
        yield line


def _sse(*payloads: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    for payload in payloads:
        lines.append(f"event: {payload['type']}")
        lines.append(f"data: {json.dumps(payload)}")
        lines.append("")
    return lines


def _text_turn(fragments: list[str]) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = [
        {"type": "message_start", "message": {"id": "msg_1", "role": "assistant"}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    ]
    for fragment in fragments:
        events.append(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": fragment}}
        )
    events.append({"type": "content_block_stop", "index": 0})
    events.append({"type": "message_delta", "delta": {"stop_reason": "end_turn"}})
    events.append({"type": "message_stop"})
    return events


def _tool_turn(partials: list[str]) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = [
        {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "tool_use", "id": "toolu_1", "name": "bash", "input": {}},
        }
    ]
    for partial in partials:
        events.append(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": partial}}
        )
    events.append({"type": "content_block_stop", "index": 0})
    events.append({"type": "message_delta", "delta": {"stop_reason": "tool_use"}})
    return events


async def _collect(lines: list[str]) -> list[dict[str, Any]]:
    return [event async for event in decode_sse(_lines(lines))]


class TestSseEventKind:
    def test_known_kinds(self) -> None:
        assert SseEventKind.parse("content_block_delta") is SseEventKind.CONTENT_BLOCK_DELTA
        assert SseEventKind.parse("ping") is SseEventKind.PING

    def test_unknown_kind(self) -> None:
        assert SseEventKind.parse("citation_delta") is SseEventKind.UNKNOWN
        assert SseEventKind.parse(None) is SseEventKind.UNKNOWN


class TestParseToolInput:
    def test_valid_object(self) -> None:
        assert parse_tool_input('{"command": "ls"}') == {"command": "ls"}

    def test_invalid_json_becomes_empty(self) -> None:
        assert parse_tool_input('{"command": "ls"') == {}

    def test_non_object_becomes_empty(self) -> None:
        assert parse_tool_input("[1, 2]") == {}

    def test_empty_uses_fallback(self) -> None:
        assert parse_tool_input("", {"a": 1}) == {"a": 1}
        assert parse_tool_input("   ") == {}


class TestIterSsePayloads:
    @pytest.mark.asyncio
    async def test_skips_comments_and_malformed_data(self) -> None:
        lines = [
            ": keep-alive",
            "",
            "event: ping",
            "data: {not json",
            "",
            "event: ping",
            'data: {"type": "ping"}',
            "",
            "data: [DONE]",
            "",
        ]
        payloads = [p async for p in iter_sse_payloads(_lines(lines))]
        assert payloads == [{"type": "ping"}]

    @pytest.mark.asyncio
    async def test_type_taken_from_event_name(self) -> None:
        lines = ["event: message_stop", "data: {}", ""]
        payloads = [p async for p in iter_sse_payloads(_lines(lines))]
        assert payloads == [{"type": "message_stop"}]

    @pytest.mark.asyncio
    async def test_multiline_data_is_joined(self) -> None:
        lines = ["event: ping", 'data: {"type":', 'data: "ping"}', ""]
        payloads = [p async for p in iter_sse_payloads(_lines(lines))]
        assert payloads == [{"type": "ping"}]

    @pytest.mark.asyncio
    async def test_trailing_event_without_blank_line(self) -> None:
        lines = ["event: ping", 'data: {"type": "ping"}']
        payloads = [p async for p in iter_sse_payloads(_lines(lines))]
        assert payloads == [{"type": "ping"}]

    @pytest.mark.asyncio
    async def test_crlf_lines(self) -> None:
        lines = ["event: ping\r", 'data: {"type": "ping"}\r', "\r"]
        payloads = [p async for p in iter_sse_payloads(_lines(lines))]
        assert payloads == [{"type": "ping"}]


class TestDecodeSse:
    @pytest.mark.asyncio
    async def test_text_deltas_concatenate(self) -> None:
        events = await _collect(_sse(*_text_turn(["Hel", "lo, ", "world"])))
        deltas = [e["data"]["text"] for e in events if e["event"] == "block-delta"]
        assert deltas == ["Hel", "lo, ", "world"]
        final = events[-1]
        assert final["event"] == "message"
        assert final["data"]["content"] == [TextBlock(text="Hello, world")]
        assert final["data"]["stop_reason"] == "end_turn"

    @pytest.mark.asyncio
    async def test_rechunking_gives_same_blocks(self) -> None:
        whole = await _collect(_sse(*_text_turn(["The quick brown fox"])))
        chunked = await _collect(_sse(*_text_turn(["The", " qu", "ick br", "own", " fox"])))
        assert whole[-1]["data"]["content"] == chunked[-1]["data"]["content"]

    @pytest.mark.asyncio
    async def test_notification_order(self) -> None:
        events = await _collect(_sse(*_text_turn(["a", "b"])))
        assert [e["event"] for e in events] == [
            "block-start",
            "block-delta",
            "block-delta",
            "block-stop",
            "message",
        ]
        assert events[0]["data"] == {"index": 0, "block_type": "text"}

    @pytest.mark.asyncio
    async def test_tool_input_parsed_at_stop(self) -> None:
        events = await _collect(_sse(*_tool_turn(['{"comm', 'and": "ls ', '/tmp/demo"}'])))
        assert [e["event"] for e in events] == ["block-start", "block-stop", "message"]
        assert events[0]["data"]["tool_id"] == "toolu_1"
        assert events[0]["data"]["tool_name"] == "bash"
        assert events[1]["data"]["input"] == {"command": "ls /tmp/demo"}
        (block,) = events[-1]["data"]["content"]
        assert block == ToolUseBlock(id="toolu_1", name="bash", input={"command": "ls /tmp/demo"})
        assert events[-1]["data"]["stop_reason"] == "tool_use"

    @pytest.mark.asyncio
    async def test_invalid_tool_json_becomes_empty_input(self) -> None:
        events = await _collect(_sse(*_tool_turn(['{"command": '])))
        (block,) = events[-1]["data"]["content"]
        assert block.input == {}

    @pytest.mark.asyncio
    async def test_thinking_then_text(self) -> None:
        payloads = [
            {"type": "content_block_start", "index": 0, "content_block": {"type": "thinking", "thinking": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "thinking_delta", "thinking": "hmm"}},
            {"type": "content_block_stop", "index": 0},
            {"type": "content_block_start", "index": 1, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 1, "delta": {"type": "text_delta", "text": "ok"}},
            {"type": "content_block_stop", "index": 1},
            {"type": "message_stop"},
        ]
        events = await _collect(_sse(*payloads))
        assert events[-1]["data"]["content"] == [ThinkingBlock(thinking="hmm"), TextBlock(text="ok")]
        thinking_deltas = [e for e in events if e["event"] == "block-delta" and e["data"]["block_type"] == "thinking"]
        assert [e["data"]["text"] for e in thinking_deltas] == ["hmm"]

    @pytest.mark.asyncio
    async def test_unknown_event_is_recorded_and_skipped(self) -> None:
        decoder = StreamDecoder()
        payloads = _text_turn(["hi"])
        payloads.insert(2, {"type": "mystery_event", "foo": 1})
        events = [e async for e in decode_sse(_lines(_sse(*payloads)), decoder)]
        assert decoder.unknown_events == ["mystery_event"]
        assert events[-1]["data"]["content"] == [TextBlock(text="hi")]

    @pytest.mark.asyncio
    async def test_malformed_lines_are_skipped(self) -> None:
        lines = _sse(*_text_turn(["hi"]))
        lines[4:4] = ["data: {broken", ""]
        events = await _collect(lines)
        assert events[-1]["data"]["content"] == [TextBlock(text="hi")]

    @pytest.mark.asyncio
    async def test_open_block_at_end_of_stream_raises(self) -> None:
        payloads = _text_turn(["partial"])[:3]
        with pytest.raises(ProtocolError, match="unfinished content blocks"):
            await _collect(_sse(*payloads))

    @pytest.mark.asyncio
    async def test_error_event_raises(self) -> None:
        payloads = [{"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}]
        with pytest.raises(ProtocolError, match="Overloaded"):
            await _collect(_sse(*payloads))

    @pytest.mark.asyncio
    async def test_stream_without_stop_event_completes(self) -> None:
        payloads = _text_turn(["done"])[:-2]
        events = await _collect(_sse(*payloads))
        assert events[-1]["data"]["content"] == [TextBlock(text="done")]
        assert events[-1]["data"]["stop_reason"] is None


class TestFeedDocument:
    def test_json_reply(self) -> None:
        decoder = StreamDecoder()
        events = decoder.feed_document(
            {
                "content": [
                    {"type": "text", "text": "Running it."},
                    {"type": "tool_use", "id": "toolu_9", "name": "bash", "input": {"command": "echo hi"}},
                ],
                "stop_reason": "tool_use",
            }
        )
        assert events == [{"event": "block-delta", "data": {"index": 0, "block_type": "text", "text": "Running it."}}]
        assert decoder.finish() == [
            TextBlock(text="Running it."),
            ToolUseBlock(id="toolu_9", name="bash", input={"command": "echo hi"}),
        ]
        assert decoder.stop_reason == "tool_use"

    def test_missing_content_raises(self) -> None:
        with pytest.raises(ProtocolError):
            StreamDecoder().feed_document({"type": "message"})
