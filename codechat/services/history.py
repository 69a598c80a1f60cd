"""Conversation history normalization.

Clients send messages in UI form: assistant entries carry their tool calls as
``toolInvocations``. Before a turn starts those are expanded into canonical
messages (assistant ``tool-call`` parts followed by a ``tool`` message holding
the ``tool-result`` parts), empty entries are dropped, and the result is what
gets persisted. :func:`to_llm_messages` then maps canonical messages onto the
Anthropic wire format.
"""

import json
from collections.abc import Iterable, Iterator

from codechat.models.llm import (
    ContentBlock,
    DocumentBlock,
    ImageBlock,
    LLMMessage,
    MediaSource,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from codechat.models.messages import Attachment, Message, TextPart, ToolCallPart, ToolResultPart
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


def normalize_messages(raw_messages: Iterable[Message]) -> list[Message]:
    """Return canonical messages with empty entries removed, order preserved."""
    normalized = [message for message in _expand(raw_messages) if has_content(message)]
    logger.debug(f"Normalized history to {len(normalized)} messages")
    return normalized


def has_content(message: Message) -> bool:
    """True when the message has non-blank text or at least one tool part."""
    if message.text.strip():
        return True
    return bool(message.tool_parts())


def _expand(raw_messages: Iterable[Message]) -> Iterator[Message]:
    for message in raw_messages:
        if message.role == "system":
            # The system prompt is owned by the server
            logger.debug("Dropping client-supplied system message")
            continue

        if message.role == "assistant" and message.tool_invocations:
            yield from _expand_tool_invocations(message)
            continue

        content = message.content
        if isinstance(content, list):
            content = [part for part in content if not isinstance(part, TextPart) or part.text.strip()]

        yield Message(
            id=message.id,
            role=message.role,
            content=content,
            attachments=message.attachments if message.role == "user" else None,
        )


def _expand_tool_invocations(message: Message) -> Iterator[Message]:
    # Invocations that never resolved are dropped so no call is left dangling
    resolved = [invocation for invocation in message.tool_invocations or [] if invocation.state == "result"]

    parts: list[TextPart | ToolCallPart] = []
    if message.text.strip():
        parts.append(TextPart(text=message.text))
    parts.extend(
        ToolCallPart(tool_call_id=inv.tool_call_id, tool_name=inv.tool_name, args=inv.args) for inv in resolved
    )
    yield Message(id=message.id, role="assistant", content=parts)

    if resolved:
        yield Message(
            role="tool",
            content=[
                ToolResultPart(
                    tool_call_id=inv.tool_call_id,
                    tool_name=inv.tool_name,
                    result=inv.result,
                    is_error=inv.is_error,
                )
                for inv in resolved
            ],
        )


def to_llm_messages(messages: Iterable[Message], public_base_url: str = "") -> list[LLMMessage]:
    """Map canonical messages to Anthropic messages.

    Tool results travel as ``user`` messages and consecutive messages with the
    same role are merged, since the API expects alternating turns.
    """
    llm_messages: list[LLMMessage] = []
    for message in messages:
        role, blocks = _to_blocks(message, public_base_url)
        if not blocks:
            continue
        if llm_messages and llm_messages[-1].role == role:
            previous = llm_messages[-1]
            llm_messages[-1] = LLMMessage(role=role, content=_as_blocks(previous.content) + blocks)
        else:
            llm_messages.append(LLMMessage(role=role, content=blocks))
    return llm_messages


def _as_blocks(content: str | list[ContentBlock]) -> list[ContentBlock]:
    if isinstance(content, str):
        return [TextBlock(text=content)]
    return list(content)


def _to_blocks(message: Message, public_base_url: str) -> tuple[str, list[ContentBlock]]:
    if message.role == "tool":
        return "user", [
            ToolResultBlock(
                tool_use_id=part.tool_call_id,
                content=json.dumps(part.result),
                is_error=part.is_error,
            )
            for part in message.tool_parts()
            if isinstance(part, ToolResultPart)
        ]

    blocks: list[ContentBlock] = []
    if message.role == "user":
        blocks.extend(_attachment_block(a, public_base_url) for a in message.attachments or [])

    if isinstance(message.content, str):
        if message.content.strip():
            blocks.append(TextBlock(text=message.content))
    else:
        for part in message.content:
            if isinstance(part, TextPart):
                blocks.append(TextBlock(text=part.text))
            elif isinstance(part, ToolCallPart):
                blocks.append(ToolUseBlock(id=part.tool_call_id, name=part.tool_name, input=part.args))
            else:
                logger.warning(f"Skipping tool result inside {message.role} message: {part.tool_call_id}")

    role = "assistant" if message.role == "assistant" else "user"
    return role, blocks


def _attachment_block(attachment: Attachment, public_base_url: str) -> ContentBlock:
    url = attachment.url
    if url.startswith("/"):
        url = public_base_url.rstrip("/") + url

    if attachment.content_type in IMAGE_TYPES:
        return ImageBlock(source=MediaSource(url=url))
    if attachment.content_type == "application/pdf":
        return DocumentBlock(source=MediaSource(url=url))
    return TextBlock(text=f"[Attached file: {attachment.name or url} ({attachment.content_type or 'unknown type'})]")
