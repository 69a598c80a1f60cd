"""Streaming chat orchestration.

One call to :meth:`ChatOrchestrator.stream_turn` drives a single turn:

    Started -> Generating -> (ToolDispatch -> Generating)* -> Finishing
            -> Persisted | PersistFailed -> Closed

The turn itself runs as a background task that writes data stream parts into a
:class:`TurnChannel`; the HTTP response only reads from the channel. If the
client goes away the channel starts discarding writes, the current model step
and its tool batch still complete, no further step is started, and whatever
was finalized is persisted.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from cuid2 import cuid_wrapper

from codechat.clients.anthropic import AnthropicClient, AnthropicTool, CacheControl
from codechat.errors import GenerationFailure
from codechat.models.llm import (
    LLMMessage,
    LLMUsage,
    StreamStop,
    TextBlock,
    TextDelta,
    ToolResultBlock,
    ToolUseBlock,
)
from codechat.models.messages import Message, TextPart, ToolCallPart, ToolInvocation, ToolResultPart
from codechat.services.history import normalize_messages, to_llm_messages
from codechat.services.transcripts import TranscriptStore
from codechat.tools.registry import ToolsRegistry
from codechat.utils import data_stream
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

OPENING_PROMPT = "Greet the user and briefly describe how you can help with their code."
INTERRUPTED_TOOL_ERROR = "Tool call was not executed because generation was interrupted"
GENERATION_ERROR_MESSAGE = "The assistant failed to finish its response. Please try again."


class TurnState(StrEnum):
    """Lifecycle states of one turn."""

    STARTED = "started"
    GENERATING = "generating"
    TOOL_DISPATCH = "tool_dispatch"
    FINISHING = "finishing"
    PERSISTED = "persisted"
    PERSIST_FAILED = "persist_failed"
    CLOSED = "closed"


class TurnChannel:
    """Ordered hand-off of stream parts from the turn task to the response."""

    _CLOSE = object()

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.disconnected = False

    def send(self, part: str) -> None:
        if not self.disconnected:
            self._queue.put_nowait(part)

    def close(self) -> None:
        self._queue.put_nowait(self._CLOSE)

    def disconnect(self) -> None:
        self.disconnected = True

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            part = await self._queue.get()
            if part is self._CLOSE:
                return
            yield part


@dataclass
class Turn:
    """State carried through one turn."""

    conversation_id: str
    user_id: str | None
    history: list[Message]
    state: TurnState = TurnState.STARTED
    response_messages: list[Message] = field(default_factory=list)
    usage: LLMUsage = field(default_factory=LLMUsage)
    finish_reason: str = "unknown"
    steps: int = 0

    def transcript(self) -> list[Message]:
        return self.history + self.response_messages


@dataclass
class ModelStep:
    """Accumulates one streamed model step in arrival order."""

    message_id: str
    blocks: list[TextBlock | ToolUseBlock] = field(default_factory=list)
    stop_reason: str | None = None
    usage: LLMUsage = field(default_factory=LLMUsage)

    def add_text(self, text: str) -> None:
        if self.blocks and isinstance(self.blocks[-1], TextBlock):
            self.blocks[-1] = TextBlock(text=self.blocks[-1].text + text)
        else:
            self.blocks.append(TextBlock(text=text))

    @property
    def tool_calls(self) -> list[ToolUseBlock]:
        return [block for block in self.blocks if isinstance(block, ToolUseBlock)]

    def to_message(self) -> Message | None:
        parts: list[TextPart | ToolCallPart] = []
        for block in self.blocks:
            if isinstance(block, TextBlock):
                if block.text.strip():
                    parts.append(TextPart(text=block.text))
            else:
                parts.append(ToolCallPart(tool_call_id=block.id, tool_name=block.name, args=block.input))
        if not parts:
            return None
        return Message(id=self.message_id, role="assistant", content=parts)

    def to_llm_message(self) -> LLMMessage:
        return LLMMessage(role="assistant", content=[b for b in self.blocks if not isinstance(b, TextBlock) or b.text.strip()])


class ChatOrchestrator:
    """Runs chat turns against the model with tool calling and persistence."""

    def __init__(
        self,
        client: AnthropicClient,
        registry: ToolsRegistry,
        store: TranscriptStore,
        system_prompt: str,
        max_steps: int = 5,
        public_base_url: str = "",
    ):
        self.client = client
        self.registry = registry
        self.store = store
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.public_base_url = public_base_url
        self._tasks: set[asyncio.Task] = set()

    async def stream_turn(
        self, conversation_id: str, raw_messages: Iterable[Message], user_id: str | None
    ) -> AsyncIterator[str]:
        """Run one turn and yield its data stream parts.

        The caller must already be authenticated. Closing this iterator early
        marks the client as gone but does not cancel the turn.
        """
        turn = Turn(conversation_id=conversation_id, user_id=user_id, history=normalize_messages(raw_messages))
        logger.info(
            f"Starting turn for conversation {conversation_id} with {len(turn.history)} messages "
            f"(user {user_id})"
        )

        channel = TurnChannel()
        task = asyncio.create_task(self._run_turn(turn, channel), name=f"turn-{conversation_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            async for part in channel:
                yield part
        finally:
            if not task.done():
                logger.info(f"Client left conversation {conversation_id} mid-turn; finishing in background")
            channel.disconnect()

    async def drain(self) -> None:
        """Wait for turns still running in the background."""
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} turns to finish")
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def active_turns(self) -> int:
        return len(self._tasks)

    async def _run_turn(self, turn: Turn, channel: TurnChannel) -> None:
        try:
            try:
                await self._generate(turn, channel)
            except GenerationFailure as e:
                logger.error(f"Generation failed for conversation {turn.conversation_id}: {e}")
                turn.finish_reason = "error"
                channel.send(data_stream.error_part(GENERATION_ERROR_MESSAGE))
            except Exception as e:
                logger.error(f"Turn for conversation {turn.conversation_id} failed: {e}", exc_info=True)
                turn.finish_reason = "error"
                channel.send(data_stream.error_part(GENERATION_ERROR_MESSAGE))

            self._transition(turn, TurnState.FINISHING)
            channel.send(data_stream.finish_message_part(turn.finish_reason, turn.usage.as_wire()))
            await self._persist(turn)
        finally:
            self._transition(turn, TurnState.CLOSED)
            channel.close()

        logger.info(
            f"Turn for conversation {turn.conversation_id} closed after {turn.steps} steps - "
            f"Input: {turn.usage.input_tokens}, Output: {turn.usage.output_tokens}"
        )

    async def _generate(self, turn: Turn, channel: TurnChannel) -> None:
        context = to_llm_messages(turn.history, self.public_base_url)
        if not context or context[0].role != "user":
            # The API needs a leading user turn, e.g. before a persisted greeting
            context.insert(0, LLMMessage(role="user", content=OPENING_PROMPT))
        tools = self._anthropic_tools()

        while turn.steps < self.max_steps:
            turn.steps += 1
            self._transition(turn, TurnState.GENERATING)
            step = ModelStep(message_id=f"msg-{cuid()}")
            channel.send(data_stream.start_step_part(step.message_id))

            try:
                await self._consume_step(step, context, tools, channel)
            except Exception:
                # Announced calls are resolved whatever ended the stream
                self._finalize_interrupted_step(turn, step, channel)
                raise

            turn.usage.add(step.usage)
            turn.finish_reason = data_stream.finish_reason_for(step.stop_reason)
            assistant_message = step.to_message()
            if assistant_message:
                turn.response_messages.append(assistant_message)

            if not step.tool_calls:
                channel.send(data_stream.finish_step_part(turn.finish_reason, step.usage.as_wire()))
                return

            self._transition(turn, TurnState.TOOL_DISPATCH)
            invocations = await self._dispatch(step.tool_calls)
            self._record_tool_results(turn, invocations, channel)

            context.append(step.to_llm_message())
            context.append(LLMMessage(role="user", content=[_result_block(inv) for inv in invocations]))

            more_steps = turn.steps < self.max_steps and not channel.disconnected
            channel.send(data_stream.finish_step_part(turn.finish_reason, step.usage.as_wire(), more_steps))

            if channel.disconnected:
                logger.info(f"Not continuing conversation {turn.conversation_id}: client disconnected")
                return

        logger.warning(f"Turn for conversation {turn.conversation_id} reached max steps ({self.max_steps})")

    async def _consume_step(
        self, step: ModelStep, context: list[LLMMessage], tools: list[AnthropicTool], channel: TurnChannel
    ) -> None:
        fragments = self.client.stream_message(messages=context, system_prompt=self.system_prompt, tools=tools)
        async for fragment in fragments:
            if isinstance(fragment, TextDelta):
                step.add_text(fragment.text)
                channel.send(data_stream.text_part(fragment.text))
            elif isinstance(fragment, ToolUseBlock):
                step.blocks.append(fragment)
                channel.send(data_stream.tool_call_part(fragment.id, fragment.name, fragment.input))
            elif isinstance(fragment, StreamStop):
                step.stop_reason = fragment.stop_reason
                step.usage = fragment.usage

        logger.debug(f"Step {step.message_id} finished: {step.stop_reason}, {len(step.tool_calls)} tool calls")

    async def _dispatch(self, calls: list[ToolUseBlock]) -> list[ToolInvocation]:
        """Execute a batch of tool calls concurrently.

        ``gather`` keeps results in call order and ``invoke`` stamps each
        result with its own call id, so results cannot be cross-assigned.
        """
        logger.info(f"Dispatching {len(calls)} tool calls: {[call.name for call in calls]}")
        return list(await asyncio.gather(*(self.registry.invoke(call) for call in calls)))

    def _record_tool_results(self, turn: Turn, invocations: list[ToolInvocation], channel: TurnChannel) -> None:
        turn.response_messages.append(
            Message(
                role="tool",
                content=[
                    ToolResultPart(
                        tool_call_id=inv.tool_call_id,
                        tool_name=inv.tool_name,
                        result=inv.result,
                        is_error=inv.is_error,
                    )
                    for inv in invocations
                ],
            )
        )
        for inv in invocations:
            channel.send(data_stream.tool_result_part(inv.tool_call_id, inv.result))

    def _finalize_interrupted_step(self, turn: Turn, step: ModelStep, channel: TurnChannel) -> None:
        """Keep partial text and close out announced calls of a failed step."""
        turn.usage.add(step.usage)
        assistant_message = step.to_message()
        if assistant_message:
            turn.response_messages.append(assistant_message)
        if step.tool_calls:
            invocations = [
                ToolInvocation(
                    tool_call_id=call.id,
                    tool_name=call.name,
                    state="result",
                    args=call.input,
                    result={"error": INTERRUPTED_TOOL_ERROR, "code": "generation_failed"},
                )
                for call in step.tool_calls
            ]
            self._record_tool_results(turn, invocations, channel)

    async def _persist(self, turn: Turn) -> None:
        if not turn.user_id:
            logger.warning(f"Not saving conversation {turn.conversation_id}: no user id")
            return

        transcript = [message.to_record() for message in turn.transcript()]
        try:
            await self.store.save(turn.conversation_id, transcript, turn.user_id)
        except Exception as e:
            # The answer was already delivered; a failed save must not retract it
            logger.error(f"Failed to save conversation {turn.conversation_id}: {e}", exc_info=True)
            self._transition(turn, TurnState.PERSIST_FAILED)
            return

        self._transition(turn, TurnState.PERSISTED)

    def _anthropic_tools(self) -> list[AnthropicTool]:
        llm_tools = list(self.registry.get_llm_tools().values())
        anthropic_tools = []
        for i, tool in enumerate(llm_tools):
            # Cache control on the last tool caches all tool definitions
            cache_control = CacheControl() if i == len(llm_tools) - 1 else None
            anthropic_tools.append(
                AnthropicTool(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                    cache_control=cache_control,
                )
            )
        return anthropic_tools

    @staticmethod
    def _transition(turn: Turn, state: TurnState) -> None:
        logger.debug(f"Conversation {turn.conversation_id}: {turn.state} -> {state}")
        turn.state = state


def _result_block(invocation: ToolInvocation) -> ToolResultBlock:
    return ToolResultBlock(
        tool_use_id=invocation.tool_call_id,
        content=json.dumps(invocation.result),
        is_error=invocation.is_error,
    )
