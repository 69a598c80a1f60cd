"""Tests for API endpoints."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from conftest import REVIEW_RESULT, ScriptedClient, make_container, review_responder, text_step, tool_step
from fastapi.testclient import TestClient

from codechat.api.files import read_within_limit
from codechat.main import create_app
from codechat.utils.data_stream import PartType, parse_stream

CHAT_MESSAGES = [{"id": "m1", "role": "user", "content": "Review: def f(a, b): return a / b"}]


@pytest.fixture
def container(settings):
    client = ScriptedClient(
        steps=[
            tool_step(("call_1", "review", {"code": "def f(a, b): return a / b", "language": "python"})),
            text_step("Watch out for b == 0."),
        ],
        responder=review_responder,
    )
    return make_container(settings, client)


@pytest.fixture
def client(container):
    return TestClient(create_app(container))


def auth(container, user_id: str) -> dict[str, str]:
    session = container.session_manager.create_session(user_id)
    return {"Authorization": f"Bearer {session.token}"}


def seed(container, conversation_id: str, owner_id: str) -> None:
    messages = [{"role": "user", "content": "hi"}]
    asyncio.run(container.store.save(conversation_id, messages, owner_id))


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_response_structure(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    def test_openapi_lists_routes(self, client):
        paths = client.get("/openapi.json").json()["paths"]
        assert {"/chat", "/history", "/files/upload", "/auth/session", "/health"} <= set(paths)


class TestSessionEndpoint:
    """Tests for session issuance."""

    def test_issues_guest_token_and_cookie(self, client):
        response = client.post("/auth/session")

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"].startswith("guest_")
        assert response.cookies["session"] == data["token"]

    def test_requested_user_id_is_ignored(self, client, container):
        """A caller cannot obtain a session for someone else's conversations."""
        seed(container, "c1", "alice")

        response = client.post("/auth/session", json={"user_id": "alice"})

        assert response.json()["user_id"] != "alice"
        token = response.json()["token"]
        denied = client.delete("/chat", params={"id": "c1"}, headers={"Authorization": f"Bearer {token}"})
        assert denied.status_code == 401
        assert container.store.get_conversation_count() == 1

    def test_dev_sessions_honor_requested_user_id(self, settings):
        dev_settings = settings.model_copy(update={"allow_dev_sessions": True})
        client = TestClient(create_app(make_container(dev_settings, ScriptedClient())))

        response = client.post("/auth/session", json={"user_id": "alice"})

        assert response.json()["user_id"] == "alice"

    def test_cookie_authenticates_later_requests(self, client):
        client.post("/auth/session")
        assert client.get("/history").status_code == 200


class TestChatEndpoint:
    """Tests for POST /chat."""

    def test_requires_session(self, client, container):
        response = client.post("/chat", json={"id": "c1", "messages": CHAT_MESSAGES})

        assert response.status_code == 401
        assert container.client.stream_calls == []

    def test_unknown_token_is_rejected(self, client):
        response = client.post(
            "/chat", json={"id": "c1", "messages": CHAT_MESSAGES}, headers={"Authorization": "Bearer bogus"}
        )
        assert response.status_code == 401

    def test_malformed_body_is_rejected(self, client, container):
        response = client.post("/chat", json={"messages": CHAT_MESSAGES}, headers=auth(container, "alice"))
        assert response.status_code == 422

    def test_streams_review_turn_and_saves_it(self, client, container):
        headers = auth(container, "alice")

        response = client.post("/chat", json={"id": "c1", "messages": CHAT_MESSAGES}, headers=headers)

        assert response.status_code == 200
        assert response.headers["x-vercel-ai-data-stream"] == "v1"
        assert response.headers["content-type"].startswith("text/plain")
        parts = parse_stream(response.text)
        result = next(p.value for p in parts if p.type == PartType.TOOL_RESULT)
        assert result["result"] == REVIEW_RESULT
        assert parts[-1].type == PartType.FINISH_MESSAGE

        saved = client.get("/chat", params={"id": "c1"}, headers=headers).json()
        assert saved["userId"] == "alice"
        assert [m["role"] for m in saved["messages"]] == ["user", "assistant", "tool", "assistant"]

    def test_cannot_continue_someone_elses_conversation(self, client, container):
        seed(container, "c1", "alice")

        response = client.post("/chat", json={"id": "c1", "messages": CHAT_MESSAGES}, headers=auth(container, "bob"))

        assert response.status_code == 401
        assert container.client.stream_calls == []


class TestGetChatEndpoint:
    """Tests for GET /chat and GET /history."""

    def test_owner_reads_conversation(self, client, container):
        seed(container, "c1", "alice")

        response = client.get("/chat", params={"id": "c1"}, headers=auth(container, "alice"))

        assert response.status_code == 200
        assert response.json()["messages"] == [{"role": "user", "content": "hi"}]

    def test_non_owner_and_missing(self, client, container):
        seed(container, "c1", "alice")
        bob = auth(container, "bob")

        assert client.get("/chat", params={"id": "c1"}, headers=bob).status_code == 401
        assert client.get("/chat", params={"id": "nope"}, headers=bob).status_code == 404
        assert client.get("/chat", params={"id": "c1"}).status_code == 401

    def test_history_only_lists_own_conversations(self, client, container):
        seed(container, "c1", "alice")
        seed(container, "c2", "bob")

        response = client.get("/history", headers=auth(container, "alice"))

        assert [c["id"] for c in response.json()] == ["c1"]


class TestDeleteChatEndpoint:
    """Tests for DELETE /chat."""

    def test_missing_id_is_not_found(self, client, container):
        response = client.delete("/chat", headers=auth(container, "alice"))
        assert response.status_code == 404

    def test_unauthenticated_delete_leaves_conversation(self, client, container):
        seed(container, "c1", "alice")

        response = client.delete("/chat", params={"id": "c1"})

        assert response.status_code == 401
        assert container.store.get_conversation_count() == 1

    def test_non_owner_delete_leaves_conversation(self, client, container):
        seed(container, "c1", "alice")

        response = client.delete("/chat", params={"id": "c1"}, headers=auth(container, "bob"))

        assert response.status_code == 401
        assert container.store.get_conversation_count() == 1

    def test_owner_delete_then_not_found(self, client, container):
        seed(container, "c1", "alice")
        alice = auth(container, "alice")

        response = client.delete("/chat", params={"id": "c1"}, headers=alice)

        assert response.status_code == 200
        assert response.text == "Chat deleted"
        assert container.store.get_conversation_count() == 0
        for _ in range(2):
            assert client.delete("/chat", params={"id": "c1"}, headers=alice).status_code == 404


class TestFilesEndpoint:
    """Tests for uploads and downloads."""

    def test_requires_session(self, client):
        response = client.post("/files/upload", files={"file": ("shot.png", b"png", "image/png")})
        assert response.status_code == 401

    def test_disallowed_type_is_rejected(self, client, container):
        response = client.post(
            "/files/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=auth(container, "alice"),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "File type should be one of: image/jpeg, image/png, application/pdf"
        assert container.blob_store.get_blob_count() == 0

    def test_oversized_file_is_rejected(self, client, container):
        data = b"x" * (5 * 1024 * 1024 + 1)

        response = client.post(
            "/files/upload", files={"file": ("big.png", data, "image/png")}, headers=auth(container, "alice")
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "File size should be less than 5MB"

    def test_missing_file(self, client, container):
        response = client.post("/files/upload", data={"note": "x"}, headers=auth(container, "alice"))

        assert response.status_code == 400
        assert response.json()["detail"] == "No file uploaded"

    def test_upload_and_download(self, client, container):
        response = client.post(
            "/files/upload",
            files={"file": ("my shot.png", b"\x89PNG data", "image/png")},
            headers=auth(container, "alice"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["contentType"] == "image/png"
        assert data["size"] == 9
        assert data["url"] == f"http://localhost:8000/files/{data['pathname']}"

        download = client.get(f"/files/{data['pathname']}")
        assert download.status_code == 200
        assert download.content == b"\x89PNG data"
        assert download.headers["content-type"] == "image/png"

    def test_unknown_file_is_not_found(self, client):
        assert client.get("/files/missing.png").status_code == 404


class TestReadWithinLimit:
    """Tests for bounded upload reads."""

    @pytest.mark.asyncio
    async def test_known_oversized_upload_is_not_read(self):
        upload = Mock(size=3 * 1024**3, read=AsyncMock())

        data, size = await read_within_limit(upload, 5 * 1024 * 1024)

        assert (data, size) == (b"", 3 * 1024**3)
        upload.read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_size_reads_at_most_one_byte_past_the_limit(self):
        upload = Mock(size=None, read=AsyncMock(return_value=b"x" * 11))

        data, size = await read_within_limit(upload, 10)

        upload.read.assert_awaited_once_with(11)
        assert size == 11

    @pytest.mark.asyncio
    async def test_small_upload_is_read_whole(self):
        upload = Mock(size=4, read=AsyncMock(return_value=b"%PDF"))

        assert await read_within_limit(upload, 10) == (b"%PDF", 4)
