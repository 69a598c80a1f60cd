"""Tools for the conversational AI assistant."""

from codechat.tools.base import ToolDefinition, ToolName
from codechat.tools.registry import ToolsRegistry

__all__ = ["ToolDefinition", "ToolName", "ToolsRegistry"]
