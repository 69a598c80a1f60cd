"""Explain code tool."""

from pydantic import BaseModel, Field

from codechat.services.generation import StructuredGenerator
from codechat.tools.base import ToolDefinition, ToolName, ToolResult


class ExplainCodeInput(BaseModel):
    """Input schema for the explain tool."""

    code: str = Field(..., min_length=1, description="Code to explain")
    language: str = Field(..., min_length=1, description="Programming language", examples=["python", "typescript"])


class CodeExplanation(ToolResult):
    """Explanation of a code snippet."""

    explanation: str = Field(..., description="Clear explanation of what the code does")
    key_points: list[str] = Field(..., description="Key concepts and patterns used in the code")
    possible_improvements: list[str] = Field(..., description="Potential ways to improve the code")


def create_explain_tool(generator: StructuredGenerator) -> ToolDefinition:
    async def explain_handler(params: ExplainCodeInput) -> CodeExplanation:
        prompt = f"Explain this {params.language} code:\n\n{params.code}"
        return await generator.generate(prompt, CodeExplanation)

    return ToolDefinition(
        name=ToolName.EXPLAIN,
        description=(
            "Explain code and suggest improvements. Use when the user asks what a piece of code does, "
            "how it works, or wants it walked through."
        ),
        input_schema_class=ExplainCodeInput,
        result_schema_class=CodeExplanation,
        handler=explain_handler,
    )
