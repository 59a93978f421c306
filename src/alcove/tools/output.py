"""Shared output cap for tool results."""

from __future__ import annotations

TRUNCATION_MARKER = "\n... (truncated)"

_max_output_chars = 30_000


def set_max_output_chars(limit: int) -> None:
    global _max_output_chars
    _max_output_chars = max(1, limit)


def get_max_output_chars() -> int:
    return _max_output_chars


def truncate(text: str) -> str:
    if len(text) > _max_output_chars:
        return text[:_max_output_chars] + TRUNCATION_MARKER
    return text
