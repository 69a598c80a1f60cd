"""Conversation records and HTTP request/response models."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from codechat.models.messages import Message


class ChatRequest(BaseModel):
    """Body of ``POST /chat``."""

    id: str = Field(..., min_length=1)
    messages: list[Message] = Field(default_factory=list)


class Conversation(BaseModel):
    """A persisted, owner-scoped transcript.

    ``messages_json`` is the stored column: the full message list encoded as a
    JSON array, replaced wholesale on every save.
    """

    id: str
    created_at: datetime
    user_id: str
    messages_json: str = "[]"

    @property
    def messages(self) -> list[dict[str, Any]]:
        return json.loads(self.messages_json)

    def as_dict(self) -> dict[str, Any]:
        """Return the record as the API exposes it, with decoded messages."""
        return {
            "id": self.id,
            "createdAt": self.created_at.isoformat(),
            "userId": self.user_id,
            "messages": self.messages,
        }


class SessionRequest(BaseModel):
    """Body of ``POST /auth/session``."""

    user_id: str | None = None


class SessionResponse(BaseModel):
    """Issued session credentials."""

    token: str
    user_id: str


class UploadResponse(BaseModel):
    """Result of a successful upload."""

    url: str
    pathname: str
    contentType: str
    size: int


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
