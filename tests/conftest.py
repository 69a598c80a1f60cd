"""Shared fixtures: a scripted stand-in for the Anthropic client and service wiring."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from codechat.config import Settings
from codechat.container import ServiceContainer, build_container
from codechat.errors import GenerationFailure
from codechat.models.llm import LLMResponse, LLMUsage, StreamStop, TextDelta, ToolUseBlock
from codechat.services.transcripts import InMemoryTranscriptStore

REVIEW_RESULT = {
    "score": 3,
    "strengths": ["Short and readable"],
    "improvements": ["Guard against a zero divisor"],
    "securityIssues": ["Unhandled ZeroDivisionError can crash callers"],
    "performanceTips": ["No performance concerns for a single division"],
}

EXPLANATION_RESULT = {
    "explanation": "Adds two numbers.",
    "keyPoints": ["Function definition"],
    "possibleImprovements": ["Add type hints"],
}


def text_step(*chunks: str, stop_reason: str = "end_turn") -> list:
    """A model step producing only text."""
    return [TextDelta(text=chunk) for chunk in chunks] + [
        StreamStop(stop_reason=stop_reason, usage=LLMUsage(input_tokens=10, output_tokens=5, total_tokens=15))
    ]


def tool_step(*calls: tuple[str, str, dict[str, Any]], text: str | None = None) -> list:
    """A model step that optionally says something and then calls tools."""
    fragments: list = [TextDelta(text=text)] if text else []
    fragments += [ToolUseBlock(id=call_id, name=name, input=args) for call_id, name, args in calls]
    fragments.append(StreamStop(stop_reason="tool_use", usage=LLMUsage(input_tokens=10, output_tokens=5)))
    return fragments


def structured_response(payload: dict[str, Any]) -> LLMResponse:
    """What the Messages API returns for a forced tool call."""
    return LLMResponse(
        content=[ToolUseBlock(id="toolu_structured", name="emit", input=payload)],
        stop_reason="tool_use",
        usage=LLMUsage(),
        model="fake-model",
    )


class ScriptedClient:
    """Stand-in for AnthropicClient driven by scripted steps.

    ``steps`` feeds successive ``stream_message`` calls; an exception inside a
    step is raised at that point of the stream. ``responder`` answers
    ``create_message`` calls (structured generation) and may be async.
    """

    def __init__(self, steps: list[list] | None = None, responder: Callable | None = None):
        self.steps = list(steps or [])
        self.responder = responder
        self.stream_calls: list[dict[str, Any]] = []
        self.create_calls: list[dict[str, Any]] = []
        self.closed = False

    async def stream_message(self, messages, system_prompt, tools=None, **kwargs):
        self.stream_calls.append({"messages": list(messages), "system_prompt": system_prompt, "tools": tools})
        if not self.steps:
            raise AssertionError("Model was called more times than scripted")
        for fragment in self.steps.pop(0):
            if isinstance(fragment, BaseException):
                raise fragment
            await asyncio.sleep(0)
            yield fragment

    async def create_message(self, messages, system_prompt, tools=None, **kwargs):
        prompt = messages[0].content
        self.create_calls.append({"prompt": prompt, "tools": tools, **kwargs})
        if self.responder is None:
            raise GenerationFailure("No structured responder scripted")
        response = self.responder(prompt)
        if asyncio.iscoroutine(response):
            response = await response
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


class FailingStore(InMemoryTranscriptStore):
    """Transcript store whose saves always fail."""

    async def save(self, conversation_id, messages, owner_id):
        raise ConnectionError("database unavailable")


def review_responder(prompt: str) -> LLMResponse:
    if prompt.startswith("Review"):
        return structured_response(REVIEW_RESULT)
    return structured_response(EXPLANATION_RESULT)


@pytest.fixture
def settings() -> Settings:
    return Settings(anthropic_api_key="test-key", max_steps=3, system_prompt="You are a test assistant.")


def make_container(settings: Settings, client: ScriptedClient, store=None) -> ServiceContainer:
    return build_container(settings, client=client, store=store or InMemoryTranscriptStore())


async def collect(stream) -> str:
    return "".join([part async for part in stream])
