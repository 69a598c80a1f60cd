"""Transcript storage for conversations.

The store keeps one record per conversation id holding the full message list
as a JSON array. Saves overwrite the list (last writer wins) but never write
into a record owned by someone else; other authorization is left to the caller.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from codechat.errors import PersistenceFailure
from codechat.models.conversation import Conversation
from codechat.utils.logging import get_logger

logger = get_logger(__name__)


class TranscriptStore(ABC):
    """Storage backend for conversation transcripts."""

    @abstractmethod
    async def save(self, conversation_id: str, messages: list[dict[str, Any]], owner_id: str) -> Conversation:
        """Create the conversation or overwrite its messages.

        Raises:
            PersistenceFailure: If the record exists under a different owner
        """

    @abstractmethod
    async def get(self, conversation_id: str) -> Conversation | None:
        """Return the stored record, or None when it does not exist."""

    @abstractmethod
    async def delete(self, conversation_id: str) -> bool:
        """Remove the record. Returns False when nothing was stored."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[Conversation]:
        """Return the owner's conversations, newest first."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""


class InMemoryTranscriptStore(TranscriptStore):
    """Process-local store, suitable for development and tests."""

    def __init__(self):
        self._records: dict[str, Conversation] = {}
        self._lock = asyncio.Lock()

    async def save(self, conversation_id: str, messages: list[dict[str, Any]], owner_id: str) -> Conversation:
        try:
            messages_json = json.dumps(messages)
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"Messages for {conversation_id} are not JSON serializable: {e}") from e

        async with self._lock:
            existing = self._records.get(conversation_id)
            if existing and existing.user_id != owner_id:
                raise PersistenceFailure(
                    f"Conversation {conversation_id} belongs to another user; refusing to overwrite it"
                )
            if existing:
                record = existing.model_copy(update={"messages_json": messages_json})
            else:
                record = Conversation(
                    id=conversation_id,
                    created_at=datetime.now(UTC),
                    user_id=owner_id,
                    messages_json=messages_json,
                )
            self._records[conversation_id] = record

        logger.debug(f"Saved conversation {conversation_id} with {len(messages)} messages")
        return record

    async def get(self, conversation_id: str) -> Conversation | None:
        async with self._lock:
            return self._records.get(conversation_id)

    async def delete(self, conversation_id: str) -> bool:
        async with self._lock:
            return self._records.pop(conversation_id, None) is not None

    async def list_by_owner(self, owner_id: str) -> list[Conversation]:
        async with self._lock:
            owned = [record for record in self._records.values() if record.user_id == owner_id]
        return sorted(owned, key=lambda record: record.created_at, reverse=True)

    def get_conversation_count(self) -> int:
        return len(self._records)
