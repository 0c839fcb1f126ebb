"""Tests for ToolRegistry and the built-in tools."""

import json

import pytest

from tool_composer.tools.builtin import concat, echo, register_builtin_tools, sleep
from tool_composer.tools.registry import ToolDefinition, ToolExecutionContext, ToolExecutionResult, ToolRegistry


async def noop(args, context):
    return ToolExecutionResult(success=True)


class TestToolRegistry:
    def test_register_and_lookup(self):
        registry = ToolRegistry()
        registry.register(ToolDefinition(name="noop", execute=noop))

        assert registry.has("noop")
        assert registry.get_definition("noop").name == "noop"
        assert registry.get_definition("other") is None

    def test_duplicate_registration_raises(self):
        registry = ToolRegistry()
        registry.register(ToolDefinition(name="noop", execute=noop))

        with pytest.raises(ValueError, match="already registered"):
            registry.register(ToolDefinition(name="noop", execute=noop))

    def test_alias_resolves_to_canonical_tool(self):
        registry = ToolRegistry()
        registry.register(ToolDefinition(name="noop", execute=noop))
        registry.register_alias("nothing", "noop")

        assert registry.get_definition("nothing").name == "noop"
        assert registry.names() == ["noop", "nothing"]
        # Aliases are not separate tools
        assert [t.name for t in registry.list()] == ["noop"]

    def test_alias_to_unknown_tool_raises(self):
        with pytest.raises(ValueError):
            ToolRegistry().register_alias("x", "missing")

    def test_unregister_drops_aliases(self):
        registry = ToolRegistry()
        registry.register(ToolDefinition(name="noop", execute=noop))
        registry.register_alias("nothing", "noop")

        assert registry.unregister("noop") is True
        assert registry.unregister("noop") is False
        assert not registry.has("nothing")

    def test_register_builtin_tools_is_idempotent(self):
        registry = register_builtin_tools(ToolRegistry())
        register_builtin_tools(registry)

        assert sorted(t.name for t in registry.list()) == ["concat", "echo", "sleep"]


class TestBuiltinTools:
    @pytest.fixture
    def context(self, tmp_path):
        return ToolExecutionContext(workspace_path=tmp_path)

    def test_context_cwd_defaults_to_workspace(self, context, tmp_path):
        assert context.cwd == tmp_path

    @pytest.mark.asyncio
    async def test_echo_returns_json(self, context):
        result = await echo({"a": 1}, context)

        assert result.success
        assert json.loads(result.output) == {"a": 1}

    @pytest.mark.asyncio
    async def test_concat(self, context):
        result = await concat({"parts": ["a", 1, "b"], "separator": "-"}, context)

        assert result.output == "a-1-b"

    @pytest.mark.asyncio
    async def test_concat_requires_list(self, context):
        result = await concat({"parts": "abc"}, context)

        assert result.success is False

    @pytest.mark.asyncio
    async def test_sleep_rejects_bad_input(self, context):
        assert (await sleep({"seconds": "soon"}, context)).success is False
        assert (await sleep({"seconds": -1}, context)).success is False

    @pytest.mark.asyncio
    async def test_sleep_zero(self, context):
        result = await sleep({"seconds": 0}, context)

        assert result.success
        assert json.loads(result.output) == 0
