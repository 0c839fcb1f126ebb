"""Tool registry and built-in tools."""

from .builtin import register_builtin_tools
from .registry import (
    ToolDefinition,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolRegistry,
    ToolRegistryProtocol,
)

__all__ = [
    "ToolDefinition",
    "ToolExecutionContext",
    "ToolExecutionResult",
    "ToolRegistry",
    "ToolRegistryProtocol",
    "register_builtin_tools",
]
