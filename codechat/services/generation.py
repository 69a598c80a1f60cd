"""Schema-constrained object generation on top of the Anthropic client."""

from pydantic import BaseModel, ValidationError

from codechat.clients.anthropic import AnthropicClient, AnthropicTool
from codechat.errors import GenerationFailure
from codechat.models.llm import LLMMessage, ToolUseBlock
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

STRUCTURED_SYSTEM_PROMPT = (
    "You produce structured data. Always answer by calling the provided tool exactly once, "
    "filling every field with concrete, accurate content."
)


class StructuredGenerator:
    """Generate values that conform to a pydantic schema.

    The schema is declared to the model as the input of a single tool and the
    model is forced to call it. Whatever comes back is validated with pydantic;
    non-conforming output is retried up to ``max_attempts`` times. Each call is
    independent, nothing is cached.
    """

    def __init__(self, client: AnthropicClient, model: str | None = None, max_attempts: int = 2):
        self.client = client
        self.model = model
        self.max_attempts = max_attempts

    async def generate[T: BaseModel](self, prompt: str, schema: type[T]) -> T:
        """Generate an instance of ``schema`` from ``prompt``.

        Args:
            prompt: Free-text instruction, must not be blank
            schema: Pydantic model describing the expected value

        Returns:
            A validated instance of ``schema``

        Raises:
            ValueError: If the prompt is blank
            GenerationFailure: If the model errors or never produces a valid value
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")

        tool_name = self._tool_name(schema)
        tool = AnthropicTool(
            name=tool_name,
            description=(schema.__doc__ or f"Return a {schema.__name__}").strip(),
            input_schema=schema.model_json_schema(),
        )
        messages = [LLMMessage(role="user", content=prompt)]

        last_error: ValidationError | None = None
        for attempt in range(1, self.max_attempts + 1):
            response = await self.client.create_message(
                messages=messages,
                system_prompt=STRUCTURED_SYSTEM_PROMPT,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool_name},
                model=self.model,
            )

            tool_input = next(
                (block.input for block in response.content if isinstance(block, ToolUseBlock)),
                None,
            )
            if tool_input is None:
                logger.warning(f"{schema.__name__}: no tool call in response (attempt {attempt}/{self.max_attempts})")
                continue

            try:
                return schema.model_validate(tool_input)
            except ValidationError as e:
                last_error = e
                logger.warning(
                    f"{schema.__name__}: output failed validation (attempt {attempt}/{self.max_attempts}): "
                    f"{e.error_count()} errors"
                )

        detail = f": {last_error.errors(include_url=False)}" if last_error else ""
        raise GenerationFailure(
            f"Model did not produce a valid {schema.__name__} after {self.max_attempts} attempts{detail}"
        )

    @staticmethod
    def _tool_name(schema: type[BaseModel]) -> str:
        return f"emit_{schema.__name__.lower()}"[:64]
