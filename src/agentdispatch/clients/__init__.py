"""External collaborator adapters (tool registries, language model)."""

from .interpreter import InterpreterDecision, PydanticAIInterpreter
from .mcp import McpToolProvider

__all__ = ["InterpreterDecision", "McpToolProvider", "PydanticAIInterpreter"]
