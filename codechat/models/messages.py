"""Chat message models shared by the API, orchestrator and transcript store.

Wire and storage payloads use camelCase keys (``toolCallId``,
``toolInvocations``, ``contentType``) so a browser client can round-trip them
unchanged; Python code uses the snake_case attribute names.
"""

from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["system", "user", "assistant", "tool"]


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either casing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Attachment(CamelModel):
    """A file attached to a user message."""

    url: str
    name: str | None = None
    content_type: str | None = None


class ToolInvocation(CamelModel):
    """One request/response pair between the model and a tool."""

    tool_call_id: str
    tool_name: str
    state: Literal["pending", "result"] = "pending"
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None

    @field_validator("state", mode="before")
    @classmethod
    def normalize_state(cls, v: Any) -> Any:
        """Collapse the client's in-flight states into ``pending``."""
        if v in ("call", "partial-call"):
            return "pending"
        return v

    @property
    def is_error(self) -> bool:
        return isinstance(self.result, dict) and "error" in self.result


class TextPart(CamelModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


class ToolCallPart(CamelModel):
    """Assistant request to call a tool."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(CamelModel):
    """Structured output of a tool call."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    result: Any = None
    is_error: bool = False


ContentPart = Annotated[TextPart | ToolCallPart | ToolResultPart, Field(discriminator="type")]


class Message(CamelModel):
    """One utterance in a conversation."""

    id: str | None = None
    role: Role
    content: str | list[ContentPart] = ""
    attachments: list[Attachment] | None = Field(
        default=None,
        validation_alias=AliasChoices("attachments", "experimental_attachments", "experimentalAttachments"),
    )
    tool_invocations: list[ToolInvocation] | None = None

    @property
    def text(self) -> str:
        """Concatenated text of the message, ignoring tool parts."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    def tool_parts(self) -> list[ToolCallPart | ToolResultPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if not isinstance(part, TextPart)]

    def to_record(self) -> dict[str, Any]:
        """JSON-ready dict used for persistence."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
