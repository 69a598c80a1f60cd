"""Service configuration read from the environment."""

import os

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PROMPT = """You are a helpful programming assistant.

- Keep your responses clear and concise, limited to 2-3 sentences when possible.
- Be friendly and encouraging while maintaining professionalism.
- Ask clarifying questions when needed to better understand the user's needs.
- Provide explanations that are easy to understand for programmers of all levels.
- Focus on best practices and clean code principles.
- Here are the types of help you can provide, each backed by a tool:
  - Code explanation and improvement suggestions (explain)
  - Code generation for specific tasks (suggest)
  - Bug fixing and debugging help (fix-bug)
  - Code reviews and best practices (review)
  - Test case generation (generate-tests)
  - General programming guidance and advice
- When you call a tool, briefly narrate its result afterwards; the user also
  sees the structured result rendered as a card."""


class Settings(BaseModel):
    """Top-level settings for the chat service."""

    anthropic_api_key: str | None = None
    chat_model: str = "claude-sonnet-4-20250514"
    structured_model: str = "claude-3-5-haiku-20241022"
    max_tokens: int = 2048
    temperature: float = 0.3
    max_steps: int = Field(default=5, ge=1)
    structured_max_attempts: int = Field(default=2, ge=1)
    session_timeout_minutes: int = 60 * 24
    # Lets POST /auth/session pick the user id; development and tests only
    allow_dev_sessions: bool = False
    public_base_url: str = "http://localhost:8000"
    max_upload_bytes: int = 5 * 1024 * 1024
    allowed_upload_types: tuple[str, ...] = ("image/jpeg", "image/png", "application/pdf")
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        overrides: dict[str, object] = {}
        env_map = {
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "chat_model": "CODECHAT_MODEL",
            "structured_model": "CODECHAT_STRUCTURED_MODEL",
            "max_tokens": "CODECHAT_MAX_TOKENS",
            "temperature": "CODECHAT_TEMPERATURE",
            "max_steps": "CODECHAT_MAX_STEPS",
            "structured_max_attempts": "CODECHAT_STRUCTURED_MAX_ATTEMPTS",
            "session_timeout_minutes": "CODECHAT_SESSION_TIMEOUT_MINUTES",
            "allow_dev_sessions": "CODECHAT_ALLOW_DEV_SESSIONS",
            "public_base_url": "CODECHAT_PUBLIC_BASE_URL",
        }
        for field_name, env_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                overrides[field_name] = value
        return cls.model_validate(overrides)
