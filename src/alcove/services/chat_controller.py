"""Control surface for chat: ``send`` and ``abort``, one active invocation per conversation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import AbortedError, ChatError, ConversationBusyError, ConversationNotFoundError
from ..models import DEFAULT_TITLE, Conversation, Message, derive_title
from ..tools import ToolRegistry
from .agent_loop import MAX_TURNS, run_agent_loop
from .ai_service import AIService
from .event_bus import GLOBAL_CHANNEL, EventBus, conversation_channel
from .storage import ConversationStore

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({"stream-done", "stream-error"})


def _has_user_turn(conversation: Conversation) -> bool:
    return any(m.role == "user" and not m.is_tool_result_turn() for m in conversation.messages)


class ChatController:
    """Owns the registry of in-flight invocations and publishes their events.

    Each ``send`` gets its own cancellation event, kept in a registry keyed by
    conversation id for the lifetime of the invocation. Starting a second
    ``send`` for a conversation that is already streaming raises
    ConversationBusyError.
    """

    def __init__(
        self,
        store: ConversationStore,
        ai_service: AIService,
        tool_registry: ToolRegistry,
        event_bus: EventBus | None = None,
        max_turns: int = MAX_TURNS,
    ) -> None:
        self.store = store
        self.ai_service = ai_service
        self.tool_registry = tool_registry
        self.event_bus = event_bus or EventBus()
        self.max_turns = max_turns
        self._active: dict[str, asyncio.Event] = {}

    def is_active(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    def active_conversations(self) -> list[str]:
        return list(self._active)

    def create_conversation(self, model: str | None = None, title: str | None = None) -> Conversation:
        return self.store.create(model=model or self.ai_service.config.model, title=title)

    async def _publish(self, conversation_id: str, kind: str, data: dict[str, Any]) -> None:
        event = {"type": kind, "conversation_id": conversation_id, "data": data}
        await self.event_bus.publish(conversation_channel(conversation_id), event)
        await self.event_bus.publish(GLOBAL_CHANNEL, event)

    async def send(self, conversation_id: str, user_text: str, model: str | None = None) -> Conversation:
        """Append the user's turn and run the agentic loop to completion.

        Progress is published on the event bus. Failures are published as
        ``stream-error`` and then re-raised.
        """
        if conversation_id in self._active:
            raise ConversationBusyError(conversation_id)
        conversation = self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        cancel_event = asyncio.Event()
        self._active[conversation_id] = cancel_event
        try:
            if model:
                conversation.model = model
            first_turn = not _has_user_turn(conversation)
            conversation.append(Message(role="user", content=user_text))
            if first_turn and conversation.title == DEFAULT_TITLE:
                conversation.title = derive_title(user_text)
            self.store.save(conversation)

            async for event in run_agent_loop(
                ai_service=self.ai_service,
                store=self.store,
                conversation=conversation,
                tool_registry=self.tool_registry,
                cancel_event=cancel_event,
                max_turns=self.max_turns,
            ):
                await self._publish(conversation_id, event.kind, event.data)
            return conversation
        except AbortedError as e:
            logger.info("Chat aborted for conversation %s", conversation_id)
            await self._publish(conversation_id, "stream-error", e.to_dict())
            raise
        except ChatError as e:
            logger.warning("Chat failed for conversation %s: %s", conversation_id, e.message)
            await self._publish(conversation_id, "stream-error", e.to_dict())
            raise
        except Exception:
            logger.exception("Chat stream error")
            await self._publish(
                conversation_id,
                "stream-error",
                {"error": "An internal error occurred", "code": "internal_error"},
            )
            raise
        finally:
            self._active.pop(conversation_id, None)

    def abort(self, conversation_id: str | None = None) -> int:
        """Cancel one active invocation, or all of them when no id is given. Returns how many were signalled."""
        if conversation_id is not None:
            targets = [self._active[conversation_id]] if conversation_id in self._active else []
        else:
            targets = list(self._active.values())
        for event in targets:
            event.set()
        return len(targets)
