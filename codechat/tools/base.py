"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ToolName(StrEnum):
    """Names of the tools the assistant can call."""

    EXPLAIN = "explain"
    SUGGEST = "suggest"
    FIX_BUG = "fix-bug"
    REVIEW = "review"
    GENERATE_TESTS = "generate-tests"


class ToolResult(BaseModel):
    """Base for tool result schemas; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


ToolHandler = Callable[[BaseModel], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool available to the AI assistant."""

    name: ToolName
    description: str
    input_schema_class: type[BaseModel]
    result_schema_class: type[ToolResult]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    async def execute(self, raw_input: dict[str, Any]) -> dict[str, Any]:
        """Validate input, run the handler and dump the result for the wire.

        The handler's return value is checked against ``result_schema_class``.
        """
        result = self.result_schema_class.model_validate(await self.handler(self.parse_input(raw_input)))
        return result.model_dump(mode="json", by_alias=True)
