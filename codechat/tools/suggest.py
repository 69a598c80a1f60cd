"""Code generation tool."""

from pydantic import BaseModel, Field

from codechat.services.generation import StructuredGenerator
from codechat.tools.base import ToolDefinition, ToolName, ToolResult


class SuggestCodeInput(BaseModel):
    """Input schema for the suggest tool."""

    task: str = Field(..., min_length=1, description="Programming task to solve")
    language: str = Field(..., min_length=1, description="Programming language")
    context: str | None = Field(default=None, description="Additional context")


class CodeSuggestion(ToolResult):
    """Generated code for a task."""

    code: str = Field(..., description="The suggested code solution")
    explanation: str = Field(..., description="Explanation of how the code works")
    requirements: list[str] = Field(..., description="Required dependencies or setup steps")


def build_suggest_prompt(params: SuggestCodeInput) -> str:
    prompt = f"Generate {params.language} code for: {params.task}"
    if params.context:
        prompt += f"\nContext: {params.context}"
    return prompt


def create_suggest_tool(generator: StructuredGenerator) -> ToolDefinition:
    async def suggest_handler(params: SuggestCodeInput) -> CodeSuggestion:
        return await generator.generate(build_suggest_prompt(params), CodeSuggestion)

    return ToolDefinition(
        name=ToolName.SUGGEST,
        description="Generate code for a given task in the requested language.",
        input_schema_class=SuggestCodeInput,
        result_schema_class=CodeSuggestion,
        handler=suggest_handler,
    )
