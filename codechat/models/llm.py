"""LLM-related data models and types (provider-agnostic)."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


class MediaSource(BaseModel):
    """URL source for image and document blocks."""

    type: Literal["url"] = "url"
    url: str


class ImageBlock(BaseModel):
    """Image attachment block."""

    type: Literal["image"] = "image"
    source: MediaSource


class DocumentBlock(BaseModel):
    """Document (PDF) attachment block."""

    type: Literal["document"] = "document"
    source: MediaSource


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock | ImageBlock | DocumentBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


@dataclass
class LLMTool:
    """Tool with both schema and callable."""

    name: str
    description: str
    input_schema: dict[str, Any]
    callable: Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class LLMUsage:
    """Token usage information from the LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens

    def as_wire(self) -> dict[str, int]:
        """Usage in the camelCase shape the data stream carries."""
        return {"promptTokens": self.input_tokens, "completionTokens": self.output_tokens}


@dataclass
class LLMResponse:
    """Provider-agnostic non-streaming response."""

    content: list[ContentBlock]
    stop_reason: str | None
    usage: LLMUsage
    model: str
    provider: str = "anthropic"


# Streaming fragments
@dataclass
class TextDelta:
    """A chunk of assistant text, in arrival order."""

    text: str


@dataclass
class StreamStop:
    """Terminal fragment of one streamed model step."""

    stop_reason: str | None
    usage: LLMUsage = field(default_factory=LLMUsage)


StreamFragment = TextDelta | ToolUseBlock | StreamStop
