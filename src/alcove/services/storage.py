"""File-backed conversation store: one JSON document per conversation."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..models import DEFAULT_TITLE, Conversation, ConversationSummary

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def _valid_id(conversation_id: str) -> bool:
    return bool(_ID_RE.match(conversation_id))


class ConversationStore:
    """Keyed persistence of conversation transcripts.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so a concurrent ``get`` sees either the old
    document or the new one, never a partial write.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, conversation_id: str) -> Path:
        return self.root / f"{conversation_id}.json"

    def create(self, model: str, title: str | None = None) -> Conversation:
        conv = Conversation(model=model, title=title or DEFAULT_TITLE)
        self.save(conv)
        return conv

    def list(self) -> list[ConversationSummary]:
        summaries: list[ConversationSummary] = []
        for path in self.root.glob("*.json"):
            try:
                conv = Conversation.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError, ValidationError):
                logger.warning("Skipping unreadable conversation file %s", path.name, exc_info=True)
                continue
            summaries.append(conv.summary())
        summaries.sort(key=lambda s: (s.updated_at, s.created_at, s.id), reverse=True)
        return summaries

    def get(self, conversation_id: str) -> Conversation | None:
        """Load a conversation; missing or unreadable records return None."""
        if not _valid_id(conversation_id):
            return None
        path = self._path(conversation_id)
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return Conversation.model_validate_json(data)
        except ValidationError:
            logger.warning("Conversation file %s is corrupt", path.name, exc_info=True)
            return None

    def save(self, conversation: Conversation) -> None:
        if not _valid_id(conversation.id):
            raise ValueError(f"Invalid conversation id: {conversation.id!r}")
        payload = conversation.model_dump_json(indent=2)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{conversation.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path(conversation.id))
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def delete(self, conversation_id: str) -> None:
        if not _valid_id(conversation_id):
            return
        try:
            self._path(conversation_id).unlink()
        except FileNotFoundError:
            pass
        else:
            logger.info("Deleted conversation %s", conversation_id)
