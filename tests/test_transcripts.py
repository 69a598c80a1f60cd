"""Tests for the in-memory transcript store."""

import asyncio

import pytest

from codechat.errors import PersistenceFailure
from codechat.services.transcripts import InMemoryTranscriptStore

MESSAGES = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": [{"type": "text", "text": "hello"}]}]


class TestInMemoryTranscriptStore:
    """Tests for save, get, delete and listing."""

    @pytest.mark.asyncio
    async def test_save_and_get(self):
        store = InMemoryTranscriptStore()

        saved = await store.save("c1", MESSAGES, "user-1")
        fetched = await store.get("c1")

        assert fetched == saved
        assert fetched.user_id == "user-1"
        assert fetched.messages == MESSAGES
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_save_overwrites_messages_and_keeps_record_identity(self):
        store = InMemoryTranscriptStore()
        first = await store.save("c1", MESSAGES[:1], "user-1")

        second = await store.save("c1", MESSAGES, "user-1")

        assert second.messages == MESSAGES
        assert second.created_at == first.created_at
        assert store.get_conversation_count() == 1

    @pytest.mark.asyncio
    async def test_save_refuses_another_owners_record(self):
        store = InMemoryTranscriptStore()
        await store.save("c1", MESSAGES[:1], "alice")

        with pytest.raises(PersistenceFailure, match="belongs to another user"):
            await store.save("c1", MESSAGES, "bob")

        kept = await store.get("c1")
        assert kept.user_id == "alice"
        assert kept.messages == MESSAGES[:1]

    @pytest.mark.asyncio
    async def test_delete_reports_whether_anything_was_removed(self):
        store = InMemoryTranscriptStore()
        await store.save("c1", MESSAGES, "user-1")

        assert await store.delete("c1") is True
        assert await store.delete("c1") is False
        assert await store.get("c1") is None

    @pytest.mark.asyncio
    async def test_list_by_owner_is_newest_first(self):
        store = InMemoryTranscriptStore()
        await store.save("old", MESSAGES, "user-1")
        await asyncio.sleep(0.001)
        await store.save("other", MESSAGES, "user-2")
        await asyncio.sleep(0.001)
        await store.save("new", MESSAGES, "user-1")

        owned = await store.list_by_owner("user-1")

        assert [c.id for c in owned] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_unserializable_messages_are_rejected(self):
        store = InMemoryTranscriptStore()

        with pytest.raises(PersistenceFailure, match="not JSON serializable"):
            await store.save("c1", [{"role": "user", "content": object()}], "user-1")
        assert await store.get("c1") is None
