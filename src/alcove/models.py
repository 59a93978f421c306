"""Pydantic models for conversations, messages, content blocks and API schemas."""

from __future__ import annotations

import time
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

DEFAULT_TITLE = "New Conversation"
_TITLE_MAX_CHARS = 60


def now_ms() -> int:
    return int(time.time() * 1000)


def derive_title(text: str) -> str:
    """Title from the first user turn: whitespace collapsed, cut at 60 chars with an ellipsis."""
    title = " ".join(text.split())
    if len(title) > _TITLE_MAX_CHARS:
        return title[:_TITLE_MAX_CHARS] + "..."
    return title or DEFAULT_TITLE


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: Union[str, list[ContentBlock]]

    def tool_uses(self) -> list[ToolUseBlock]:
        if isinstance(self.content, str):
            return []
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def is_tool_result_turn(self) -> bool:
        """True for synthetic user turns that only carry tool results."""
        if self.role != "user" or isinstance(self.content, str) or not self.content:
            return False
        return all(isinstance(b, ToolResultBlock) for b in self.content)

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


class Conversation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = DEFAULT_TITLE
    model: str
    messages: list[Message] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    def touch(self) -> None:
        self.updated_at = max(now_ms(), self.updated_at + 1)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.touch()

    def summary(self) -> ConversationSummary:
        return ConversationSummary(
            id=self.id,
            title=self.title,
            model=self.model,
            message_count=len(self.messages),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ConversationSummary(BaseModel):
    id: str
    title: str
    model: str
    message_count: int
    created_at: int
    updated_at: int


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=200_000)
    model: str | None = Field(default=None, max_length=200)


class ConversationCreate(BaseModel):
    model: str | None = Field(default=None, max_length=200)
    title: str | None = Field(default=None, min_length=1, max_length=200)
