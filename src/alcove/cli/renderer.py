"""Rich-based terminal output for the CLI."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..models import Conversation, ConversationSummary, TextBlock, ThinkingBlock, ToolUseBlock

console = Console(stderr=True)
# Reply text goes to stdout so it can be piped
_stdout_console = Console()

_PREVIEW_CHARS = 200


def _preview(value: str) -> str:
    value = value.strip()
    if len(value) > _PREVIEW_CHARS:
        return value[:_PREVIEW_CHARS] + "..."
    return value


def _format_ms(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def render_text_delta(text: str) -> None:
    _stdout_console.print(text, end="", markup=False, highlight=False, soft_wrap=True)


def render_thinking_delta(text: str) -> None:
    console.print(Text(text, style="grey50 italic"), end="", soft_wrap=True)


def render_tool_call_start(tool_name: str, arguments: dict[str, Any]) -> None:
    args_str = json.dumps(arguments, indent=None, default=str)
    if len(args_str) > _PREVIEW_CHARS:
        args_str = args_str[:_PREVIEW_CHARS] + "..."
    console.print(f"\n  [grey62]> {escape(tool_name)}({escape(args_str)})[/grey62]")


def render_tool_call_end(tool_name: str, output: str, is_error: bool) -> None:
    status = "error" if is_error else "success"
    text = Text(f"  < {tool_name}: {status}", style="red" if is_error else "green")
    summary = _preview(output)
    if summary:
        text.append(f" - {summary}", style="grey62")
    console.print(text)


def render_turn_limit(turns: int) -> None:
    console.print(f"\n[yellow]Stopped after {turns} turns (turn limit reached).[/yellow]")


def render_error(message: str) -> None:
    console.print(f"\n[red bold]Error:[/red bold] {escape(message)}")


def render_event(event: dict[str, Any]) -> None:
    """Draw one bus event (``{"type", "conversation_id", "data"}``)."""
    kind = event.get("type")
    data = event.get("data") or {}

    if kind == "block-delta":
        if data.get("block_type") == "thinking":
            render_thinking_delta(data.get("text", ""))
        else:
            render_text_delta(data.get("text", ""))
    elif kind == "block-stop":
        if data.get("block_type") in ("text", "thinking"):
            _stdout_console.print()
    elif kind == "tool-executing":
        render_tool_call_start(data.get("name", "?"), data.get("input") or {})
    elif kind == "tool-result":
        render_tool_call_end(data.get("name", "?"), data.get("output", ""), bool(data.get("is_error")))
    elif kind == "stream-done":
        if data.get("turn_limit_reached"):
            render_turn_limit(data.get("turns", 0))
    elif kind == "stream-error":
        if data.get("code") == "aborted":
            console.print("\n[grey62]Cancelled[/grey62]")
        else:
            render_error(data.get("error", "Unknown error"))


def render_conversation_list(conversations: list[ConversationSummary]) -> None:
    if not conversations:
        console.print("\n[grey62]No conversations yet.[/grey62]\n")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Model", style="grey62")
    table.add_column("Messages", justify="right")
    table.add_column("Updated", style="grey62")
    for conv in conversations:
        table.add_row(
            conv.id,
            escape(conv.title),
            escape(conv.model),
            str(conv.message_count),
            _format_ms(conv.updated_at),
        )
    _stdout_console.print(table)


def render_conversation(conversation: Conversation) -> None:
    """Print a stored transcript. Tool-result turns are folded into the tool calls above them."""
    _stdout_console.print(f"[bold]{escape(conversation.title)}[/bold]  [grey62]{conversation.id}[/grey62]")
    _stdout_console.print(f"[grey62]Model: {escape(conversation.model)}[/grey62]\n")

    for message in conversation.messages:
        if message.is_tool_result_turn():
            continue
        if isinstance(message.content, str):
            _stdout_console.print(f"[bold green]{message.role}>[/bold green] {escape(message.content)}\n")
            continue

        label = "[bold blue]assistant>[/bold blue]" if message.role == "assistant" else f"[bold green]{message.role}>[/bold green]"
        _stdout_console.print(label)
        for block in message.content:
            if isinstance(block, TextBlock):
                _stdout_console.print(escape(block.text))
            elif isinstance(block, ThinkingBlock):
                _stdout_console.print(Text(block.thinking, style="grey50 italic"))
            elif isinstance(block, ToolUseBlock):
                args_str = _preview(json.dumps(block.input, default=str))
                _stdout_console.print(f"  [grey62]> {escape(block.name)}({escape(args_str)})[/grey62]")
        _stdout_console.print()
