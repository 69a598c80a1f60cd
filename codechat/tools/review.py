"""Code review tool."""

from pydantic import BaseModel, Field

from codechat.services.generation import StructuredGenerator
from codechat.tools.base import ToolDefinition, ToolName, ToolResult


class ReviewCodeInput(BaseModel):
    """Input schema for the review tool."""

    code: str = Field(..., min_length=1, description="Code to review")
    language: str = Field(..., min_length=1, description="Programming language")


class CodeReview(ToolResult):
    """Review of code quality, security and performance."""

    score: int = Field(..., ge=1, le=10, description="Code quality score out of 10")
    strengths: list[str] = Field(..., description="Good practices found in the code")
    improvements: list[str] = Field(..., description="Suggested improvements and best practices")
    security_issues: list[str] = Field(..., description="Potential security concerns")
    performance_tips: list[str] = Field(..., description="Performance optimization suggestions")


def create_review_tool(generator: StructuredGenerator) -> ToolDefinition:
    async def review_handler(params: ReviewCodeInput) -> CodeReview:
        prompt = f"Review this {params.language} code for best practices and potential issues:\n\n{params.code}"
        return await generator.generate(prompt, CodeReview)

    return ToolDefinition(
        name=ToolName.REVIEW,
        description="Review code for best practices, security issues and performance problems, with a 1-10 score.",
        input_schema_class=ReviewCodeInput,
        result_schema_class=CodeReview,
        handler=review_handler,
    )
