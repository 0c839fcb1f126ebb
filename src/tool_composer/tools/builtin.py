"""Small built-in tools used by command-line runs."""

import asyncio
import json
from typing import Any, Dict

from .registry import ToolDefinition, ToolExecutionContext, ToolExecutionResult, ToolRegistry


async def echo(args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
    """Return the arguments as JSON."""
    return ToolExecutionResult(success=True, output=json.dumps(args, default=str))


async def concat(args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
    """Join ``parts`` with ``separator`` (default: a single space)."""
    parts = args.get("parts")
    if not isinstance(parts, list):
        return ToolExecutionResult(success=False, output="'parts' must be a list")
    separator = str(args.get("separator", " "))
    return ToolExecutionResult(success=True, output=separator.join(str(p) for p in parts))


async def sleep(args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
    """Wait ``seconds`` and return them."""
    try:
        seconds = float(args.get("seconds", 0))
    except (TypeError, ValueError):
        return ToolExecutionResult(success=False, output=f"Invalid seconds: {args.get('seconds')!r}")
    if seconds < 0:
        return ToolExecutionResult(success=False, output="seconds must be >= 0")
    await asyncio.sleep(seconds)
    return ToolExecutionResult(success=True, output=json.dumps(seconds))


BUILTIN_TOOLS = [
    ToolDefinition(name="echo", execute=echo, description="Return the arguments as JSON", category="builtin"),
    ToolDefinition(name="concat", execute=concat, description="Join a list of parts into one string", category="builtin"),
    ToolDefinition(name="sleep", execute=sleep, description="Wait for a number of seconds", category="builtin"),
]


def register_builtin_tools(registry: ToolRegistry) -> ToolRegistry:
    for tool in BUILTIN_TOOLS:
        if not registry.has(tool.name):
            registry.register(tool)
    return registry
