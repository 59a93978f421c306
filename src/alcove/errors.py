"""Error taxonomy for the chat engine.

Every error carries a stable ``code`` so that the notification channel and the
HTTP layer can report it without string matching on messages.
"""

from __future__ import annotations

_MAX_BODY_CHARS = 500


class ChatError(Exception):
    code = "chat_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"error": self.message, "code": self.code}


class TransportError(ChatError):
    """The inference proxy could not be reached or the connection dropped."""

    code = "transport_error"


class UpstreamError(ChatError):
    """The inference proxy answered with a non-success HTTP status."""

    code = "upstream_error"

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body[:_MAX_BODY_CHARS]
        detail = f": {self.body}" if self.body else ""
        super().__init__(f"Proxy returned HTTP {status_code}{detail}")

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class ProtocolError(ChatError):
    """The response stream could not be reduced to content blocks."""

    code = "protocol_error"


class AbortedError(ChatError):
    """The user cancelled the invocation."""

    code = "aborted"

    def __init__(self, message: str = "Request aborted") -> None:
        super().__init__(message)


class ToolError(ChatError):
    """Raised inside tool handlers; always converted to an error tool_result."""

    code = "tool_error"


class ConversationNotFoundError(ChatError):
    code = "not_found"

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ConversationBusyError(ChatError):
    code = "busy"

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"A reply is already streaming for conversation {conversation_id}")
