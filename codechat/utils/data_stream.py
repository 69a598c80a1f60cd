"""Line-oriented data stream protocol for chat responses.

Every part is one line: a type code, a colon and a JSON value, e.g.
``0:"Hello"``. Browser clients built on the AI SDK data stream format read
this directly.
"""

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

DATA_STREAM_HEADER = "x-vercel-ai-data-stream"
DATA_STREAM_VERSION = "v1"


class PartType(StrEnum):
    """Type codes of the stream parts."""

    TEXT = "0"
    ERROR = "3"
    TOOL_CALL = "9"
    TOOL_RESULT = "a"
    FINISH_STEP = "e"
    FINISH_MESSAGE = "d"
    START_STEP = "f"


@dataclass
class StreamPart:
    """A decoded stream part."""

    type: PartType
    value: Any


def encode_part(part_type: PartType, value: Any) -> str:
    return f"{part_type}:{json.dumps(value, separators=(',', ':'))}\n"


def text_part(text: str) -> str:
    return encode_part(PartType.TEXT, text)


def error_part(message: str) -> str:
    return encode_part(PartType.ERROR, message)


def tool_call_part(tool_call_id: str, tool_name: str, args: dict[str, Any]) -> str:
    return encode_part(PartType.TOOL_CALL, {"toolCallId": tool_call_id, "toolName": tool_name, "args": args})


def tool_result_part(tool_call_id: str, result: Any) -> str:
    return encode_part(PartType.TOOL_RESULT, {"toolCallId": tool_call_id, "result": result})


def start_step_part(message_id: str) -> str:
    return encode_part(PartType.START_STEP, {"messageId": message_id})


def finish_step_part(finish_reason: str, usage: dict[str, int], is_continued: bool = False) -> str:
    return encode_part(
        PartType.FINISH_STEP, {"finishReason": finish_reason, "usage": usage, "isContinued": is_continued}
    )


def finish_message_part(finish_reason: str, usage: dict[str, int]) -> str:
    return encode_part(PartType.FINISH_MESSAGE, {"finishReason": finish_reason, "usage": usage})


def parse_part(line: str) -> StreamPart:
    """Decode one line of the stream.

    Raises:
        ValueError: If the line is not a well-formed part
    """
    code, sep, payload = line.rstrip("\n").partition(":")
    if not sep:
        raise ValueError(f"Malformed stream part: {line!r}")
    try:
        part_type = PartType(code)
    except ValueError as e:
        raise ValueError(f"Unknown stream part type: {code!r}") from e
    return StreamPart(type=part_type, value=json.loads(payload))


def parse_stream(body: str) -> list[StreamPart]:
    return [parse_part(line) for line in body.splitlines() if line.strip()]


# Anthropic stop reasons mapped onto data stream finish reasons
FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool-calls",
    "refusal": "content-filter",
}


def finish_reason_for(stop_reason: str | None) -> str:
    if stop_reason is None:
        return "unknown"
    return FINISH_REASONS.get(stop_reason, "other")
