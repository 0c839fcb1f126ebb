"""Tool registry: resolves tool names to executable definitions."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionContext:
    """Opaque context handed to every tool invocation."""
    workspace_path: Path = field(default_factory=Path.cwd)
    cwd: Optional[Path] = None
    session_id: Optional[str] = None
    run_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.cwd is None:
            self.cwd = self.workspace_path


@dataclass
class ToolExecutionResult:
    """What a tool returns. ``output`` is text; JSON text is parsed by the composer."""
    success: bool
    output: str = ""
    tokens_used: int = 0


ToolCallable = Callable[[Dict[str, Any], ToolExecutionContext], Awaitable[ToolExecutionResult]]


@dataclass
class ToolDefinition:
    """A named, invocable tool."""
    name: str
    execute: ToolCallable
    description: str = ""
    requires_approval: bool = False
    category: Optional[str] = None


class ToolRegistryProtocol(Protocol):
    """The slice of a registry the composer depends on."""

    def list(self) -> List[ToolDefinition]:
        ...

    def get_definition(self, name: str) -> Optional[ToolDefinition]:
        ...


class ToolRegistry:
    """In-memory tool registry with alias support."""

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        removed = self._tools.pop(name, None)
        if removed is None:
            return False
        # Drop aliases that pointed at the removed tool
        self._aliases = {alias: target for alias, target in self._aliases.items() if target != name}
        return True

    def register_alias(self, alias: str, canonical_name: str) -> None:
        if canonical_name not in self._tools:
            raise ValueError(f"Cannot alias unknown tool '{canonical_name}'")
        self._aliases[alias] = canonical_name

    def resolve_name(self, name: str) -> Optional[str]:
        if name in self._tools:
            return name
        return self._aliases.get(name)

    def get_definition(self, name: str) -> Optional[ToolDefinition]:
        resolved = self.resolve_name(name)
        return self._tools.get(resolved) if resolved else None

    def has(self, name: str) -> bool:
        return self.resolve_name(name) is not None

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        """Canonical names plus aliases, i.e. everything get_definition resolves."""
        return sorted([*self._tools, *self._aliases])
