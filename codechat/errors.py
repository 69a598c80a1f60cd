"""Error taxonomy for the chat service.

Every failure the chat loop can observe maps to one of these classes. The
HTTP layer translates them to status codes; the orchestrator converts the
tool-local ones into error-bearing results so a turn is never aborted by a
single tool.
"""

from typing import Any


class ChatError(Exception):
    """Base class for all service errors."""

    code: str = "internal_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for tool results and JSON error bodies."""
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class AuthenticationFailure(ChatError):
    """No valid session accompanies the request."""

    code = "unauthorized"


class AuthorizationFailure(ChatError):
    """The session is valid but does not own the resource."""

    # Same code as AuthenticationFailure so callers cannot tell them apart
    code = "unauthorized"


class ValidationFailure(ChatError):
    """Input did not satisfy a declared schema or constraint."""

    code = "invalid_input"


class GenerationFailure(ChatError):
    """The model call failed or never produced a schema-conforming value."""

    code = "generation_failed"


class PersistenceFailure(ChatError):
    """The transcript store could not complete a write."""

    code = "persistence_failed"


class NotFound(ChatError):
    """The requested record does not exist."""

    code = "not_found"
