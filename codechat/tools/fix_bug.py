"""Bug fixing tool."""

from pydantic import BaseModel, Field

from codechat.services.generation import StructuredGenerator
from codechat.tools.base import ToolDefinition, ToolName, ToolResult


class FixBugInput(BaseModel):
    """Input schema for the fix-bug tool."""

    code: str = Field(..., min_length=1, description="Code with bug")
    error: str = Field(..., min_length=1, description="Error message or description")
    language: str = Field(..., min_length=1, description="Programming language")


class BugFix(ToolResult):
    """Corrected code and the cause of the bug."""

    fixed_code: str = Field(..., description="The corrected code")
    explanation: str = Field(..., description="Explanation of what caused the bug")
    prevention_tips: list[str] = Field(..., description="Tips to prevent similar bugs in the future")


def create_fix_bug_tool(generator: StructuredGenerator) -> ToolDefinition:
    async def fix_bug_handler(params: FixBugInput) -> BugFix:
        prompt = (
            f"Fix this {params.language} code that has the following error:\n\n"
            f"Code:\n{params.code}\n\nError:\n{params.error}"
        )
        return await generator.generate(prompt, BugFix)

    return ToolDefinition(
        name=ToolName.FIX_BUG,
        description=(
            "Fix bugs in code. Requires the failing code and the error message or a description "
            "of the wrong behaviour."
        ),
        input_schema_class=FixBugInput,
        result_schema_class=BugFix,
        handler=fix_bug_handler,
    )
