"""Shared fixtures for unit tests."""

import asyncio
import json
from typing import Any, Dict, List

import pytest

from tool_composer.core.config import ComposerConfig
from tool_composer.tools.registry import (
    ToolDefinition,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolRegistry,
)
from tool_composer.workflow.composer import ToolComposer
from tool_composer.workflow.models import ExecutionOptions


class RecordingTool:
    """Async tool stub that records its calls and replays scripted results.

    ``results`` items are ToolExecutionResult or Exception instances; the
    last item repeats once the script runs out. With no script the tool
    echoes its arguments back as JSON.
    """

    def __init__(self, results: List[Any] = None, delay: float = 0.0, tokens: int = 0):
        self.calls: List[Dict[str, Any]] = []
        self.results = list(results or [])
        self.delay = delay
        self.tokens = tokens
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, args: Dict[str, Any], context: ToolExecutionContext) -> ToolExecutionResult:
        self.calls.append(args)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if not self.results:
            return ToolExecutionResult(success=True, output=json.dumps(args), tokens_used=self.tokens)

        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def config():
    """Engine config with retry backoff disabled so retry tests run instantly."""
    return ComposerConfig(retry_backoff_ms=0)


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def add_tool(registry):
    """Register a RecordingTool under ``name`` and return it."""

    def _add(name: str, results: List[Any] = None, delay: float = 0.0, tokens: int = 0) -> RecordingTool:
        tool = RecordingTool(results=results, delay=delay, tokens=tokens)
        registry.register(ToolDefinition(name=name, execute=tool))
        return tool

    return _add


@pytest.fixture
def tool_context(tmp_path):
    return ToolExecutionContext(workspace_path=tmp_path, session_id="test-session")


@pytest.fixture
def options(tool_context):
    return ExecutionOptions(session_id="test-session", tool_context=tool_context)


@pytest.fixture
def composer(registry, config):
    return ToolComposer(registry, config=config)
