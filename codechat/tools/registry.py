"""Tools registry for managing AI assistant tools."""

from typing import Any

from pydantic import ValidationError

from codechat.errors import ChatError, ValidationFailure
from codechat.models.llm import LLMTool, ToolUseBlock
from codechat.models.messages import ToolInvocation
from codechat.services.generation import StructuredGenerator
from codechat.tools.base import ToolDefinition, ToolName
from codechat.tools.explain import create_explain_tool
from codechat.tools.fix_bug import create_fix_bug_tool
from codechat.tools.generate_tests import create_generate_tests_tool
from codechat.tools.review import create_review_tool
from codechat.tools.suggest import create_suggest_tool
from codechat.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Dispatch table from tool name to definition.

    Built once per application; definitions are immutable and the registry
    holds no per-request state, so one instance serves concurrent turns.
    """

    def __init__(self, generator: StructuredGenerator):
        """Initialize tools registry with the structured generation client."""
        self.generator = generator
        self._tools: dict[ToolName, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the default set of programming tools."""
        tools = [
            create_explain_tool(self.generator),
            create_suggest_tool(self.generator),
            create_fix_bug_tool(self.generator),
            create_review_tool(self.generator),
            create_generate_tests_tool(self.generator),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> ToolDefinition | None:
        try:
            return self._tools.get(ToolName(name))
        except ValueError:
            return None

    def get_llm_tools(self) -> dict[str, LLMTool]:
        """Get LLM tools with both schemas and callables."""
        return {
            str(name): LLMTool(
                name=str(tool.name),
                description=tool.description,
                input_schema=tool.get_json_schema(),
                callable=tool.execute,
            )
            for name, tool in self._tools.items()
        }

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return [str(name) for name in self._tools]

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return self.get_tool(name) is not None

    async def invoke(self, call: ToolUseBlock) -> ToolInvocation:
        """Run one tool call and return its resolved invocation.

        Never raises for tool-local problems: unknown tools, invalid arguments
        and failing handlers all come back as a result carrying an ``error``.
        """
        tool = self.get_tool(call.name)
        if tool is None:
            logger.error(f"Unknown tool requested: {call.name}")
            error = ValidationFailure(f"Unknown tool {call.name}")
            return self._resolved(call, error.to_dict())

        try:
            tool.parse_input(call.input)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {call.name} ({call.id}): {e.error_count()} errors")
            error = ValidationFailure(
                f"Invalid arguments for {call.name}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
            return self._resolved(call, _jsonable(error.to_dict()))

        logger.debug(f"Executing tool: {call.name} ({call.id}) with input: {call.input}")
        try:
            result = await tool.execute(call.input)
        except ChatError as e:
            # GenerationFailure is the expected case here
            logger.error(f"Tool {call.name} ({call.id}) failed: {e}")
            return self._resolved(call, e.to_dict())
        except Exception as e:
            logger.error(f"Tool {call.name} ({call.id}) raised unexpectedly: {e}", exc_info=True)
            return self._resolved(call, {"error": f"Tool {call.name} failed: {e!s}", "code": "internal_error"})

        logger.debug(f"Tool {call.name} succeeded: {str(result)[:100]}...")
        return self._resolved(call, result)

    @staticmethod
    def _resolved(call: ToolUseBlock, result: Any) -> ToolInvocation:
        return ToolInvocation(
            tool_call_id=call.id,
            tool_name=call.name,
            state="result",
            args=call.input,
            result=result,
        )


def _jsonable(value: Any) -> Any:
    """Coerce validation error payloads (which may hold arbitrary inputs) to JSON types."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, str | int | float | bool):
        return value
    return str(value)
