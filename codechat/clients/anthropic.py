"""Anthropic API client with rate limiting, streaming and error handling."""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import APIError, APIStatusError, AsyncAnthropic
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from codechat.errors import GenerationFailure
from codechat.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    StreamFragment,
    StreamStop,
    TextBlock,
    TextDelta,
    ToolUseBlock,
)
from codechat.utils.logging import get_logger

logger = get_logger(__name__)


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    temperature: float = 0.3
    max_retries: int = 3
    retry_delay: float = 1.0
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    # Token limits for truncation
    max_conversation_tokens: int = 200_000
    token_headroom: int = 4000  # Reserve tokens for response


class AnthropicRateLimiter:
    """Client-side rate limiter built on the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within both windows."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_reset(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=max(1, estimated_tokens)):
            await self._wait_for_reset(self.token_limit, token_identifier, "Token")

    async def _wait_for_reset(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


class AnthropicClient:
    """Low-level Anthropic API client.

    Owns one ``AsyncAnthropic`` connection pool. Build it once at startup and
    call :meth:`close` on shutdown.
    """

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (the SDK falls back to ANTHROPIC_API_KEY)
            config: Client configuration
            client: Preconstructed SDK client, mainly for tests
        """
        self.config = config or AnthropicConfig()
        # Retries are handled here, not inside the SDK
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def close(self) -> None:
        await self.client.close()

    def _build_request(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None,
        **kwargs,
    ) -> dict[str, Any]:
        request_params: dict[str, Any] = {
            "model": kwargs.pop("model", None) or self.config.model,
            "max_tokens": kwargs.pop("max_tokens", None) or self.config.max_tokens,
            "temperature": kwargs.pop("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": [msg.model_dump(exclude_none=True) for msg in messages],
        }
        if tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]
        request_params.update(kwargs)
        return request_params

    async def create_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
        **kwargs,
    ) -> LLMResponse:
        """Create a message with the Messages API (non-streaming).

        Args:
            messages: Conversation history
            system_prompt: System prompt
            tools: Available tools
            **kwargs: Additional parameters (model, tool_choice, ...)

        Returns:
            Provider-agnostic response

        Raises:
            GenerationFailure: If the request fails after retries
        """
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)
        await self.rate_limiter.check_rate_limit(self._estimate_tokens(truncated_messages, system_prompt))

        request_params = self._build_request(truncated_messages, system_prompt, tools, **kwargs)
        logger.debug(f"Making Anthropic API call with model: {request_params['model']}")

        try:
            response: Message = await self._request_with_retries(
                lambda: self.client.messages.create(**request_params)
            )
        except APIError as e:
            raise GenerationFailure(f"Model request failed: {e}") from e

        logger.debug(
            f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}"
        )

        return LLMResponse(
            content=self._convert_content_blocks(response.content),
            stop_reason=response.stop_reason,
            usage=self._convert_usage(response.usage),
            model=response.model,
        )

    async def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
        **kwargs,
    ) -> AsyncIterator[StreamFragment]:
        """Stream one model step as fragments.

        Yields text deltas as they arrive and each tool-use block once its
        input is complete, then a final :class:`StreamStop`.

        Raises:
            GenerationFailure: If the upstream call errors at any point
        """
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)
        await self.rate_limiter.check_rate_limit(self._estimate_tokens(truncated_messages, system_prompt))

        request_params = self._build_request(truncated_messages, system_prompt, tools, **kwargs)
        logger.debug(
            f"Streaming {len(truncated_messages)} messages, {len(tools) if tools else 0} tools "
            f"with model: {request_params['model']}"
        )

        sdk = self.client.with_options(max_retries=self.config.max_retries)
        try:
            async with sdk.messages.stream(**request_params) as stream:
                async for event in stream:
                    if event.type == "text":
                        yield TextDelta(text=event.text)
                    elif event.type == "content_block_stop" and event.content_block.type == "tool_use":
                        block = event.content_block
                        yield ToolUseBlock(id=block.id, name=block.name, input=dict(block.input or {}))
                final_message = await stream.get_final_message()
        except APIError as e:
            raise GenerationFailure(f"Model stream failed: {e}") from e

        yield StreamStop(stop_reason=final_message.stop_reason, usage=self._convert_usage(final_message.usage))

    async def _request_with_retries[T](self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute Anthropic API request with retry logic."""
        for attempt in range(self.config.max_retries):
            try:
                return await call()

            except APIStatusError as e:
                if e.status_code == 429:
                    retry_after = int(e.response.headers.get("retry-after", 60))
                    if retry_after < 120 and attempt < self.config.max_retries - 1:
                        logger.warning(f"Rate limited by Anthropic, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif e.status_code >= 500 and attempt < self.config.max_retries - 1:
                    # Server error, retry with exponential backoff
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise

            except APIError:
                # Connection errors and timeouts
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise

        raise GenerationFailure(f"Failed to complete request after {self.config.max_retries} attempts")

    def _convert_usage(self, usage) -> LLMUsage:
        if not usage:
            return LLMUsage()
        return LLMUsage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.input_tokens + usage.output_tokens,
        )

    def _convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump()
            if block_dict.get("type") == "text":
                converted_blocks.append(TextBlock.model_validate(block_dict))
            elif block_dict.get("type") == "tool_use":
                converted_blocks.append(ToolUseBlock.model_validate(block_dict))
            else:
                logger.warning(f"Unknown content block type: {block_dict.get('type')}")

        return converted_blocks

    def _message_text(self, message: LLMMessage) -> str:
        if isinstance(message.content, str):
            return message.content
        parts = []
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                parts.append(str(block.input))
            elif hasattr(block, "content"):
                parts.append(block.content)
        return "".join(parts)

    def _estimate_tokens(self, messages: list[LLMMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_text_tokens(text_content)

    def estimate_text_tokens(self, text: str) -> int:
        """Estimate token count for a piece of text.

        Falls back to roughly 4 characters per token without a tokenizer.
        """
        try:
            return len(self.tokenizer.encode(text)) if self.tokenizer else len(text) // 4
        except Exception:
            return len(text) // 4

    def truncate_conversation(
        self, messages: list[LLMMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[LLMMessage]:
        """Drop the oldest messages until the conversation fits the context window.

        The kept window always starts with a user message so tool results are
        never separated from the assistant turn that requested them.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_text_tokens(system_prompt)
        if tools:
            tool_content = "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            available_tokens -= self.estimate_text_tokens(tool_content)

        truncated_messages: list[LLMMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_text_tokens(self._message_text(message))
            if current_tokens + message_tokens > available_tokens:
                break
            truncated_messages.insert(0, message)
            current_tokens += message_tokens

        while truncated_messages and not self._starts_user_turn(truncated_messages[0]):
            truncated_messages.pop(0)

        if len(truncated_messages) < len(messages):
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages

    @staticmethod
    def _starts_user_turn(message: LLMMessage) -> bool:
        if message.role != "user":
            return False
        if isinstance(message.content, str):
            return True
        return not any(getattr(block, "type", None) == "tool_result" for block in message.content)
