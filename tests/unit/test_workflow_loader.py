"""Tests for loading workflow definitions from YAML and mappings."""

import pytest

from tool_composer.errors import WorkflowDefinitionError
from tool_composer.workflow.loader import load_workflow, parse_workflow


WORKFLOW_YAML = """
id: summarize
name: Summarize search results
description: Search, then summarize the top hits
timeout_ms: 30000
steps:
  - id: search
    tool_name: web_search
    bindings:
      - source: input
        source_path: query
        target: q
  - id: summarize
    tool_name: summarize
    depends_on: [search]
    on_error: fallback
    fallback_value: null
    bindings:
      - source: search
        source_path: results
        target: documents
        transform: map
        transform_config:
          path: snippet
output_extraction:
  - source: summarize
    source_path: text
    target: summary
"""


class TestLoadWorkflow:
    def test_loads_yaml_definition(self, tmp_path):
        path = tmp_path / "summarize.yaml"
        path.write_text(WORKFLOW_YAML)

        workflow = load_workflow(path)

        assert workflow.id == "summarize"
        assert workflow.timeout_ms == 30000
        assert [s.id for s in workflow.steps] == ["search", "summarize"]
        summarize = workflow.get_step("summarize")
        assert summarize.depends_on == ["search"]
        assert summarize.bindings[0].transform_config == {"path": "snippet"}
        assert summarize.has_fallback_value
        assert workflow.output_extraction[0].target == "summary"

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkflowDefinitionError, match="not found"):
            load_workflow(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("id: [unclosed\n")

        with pytest.raises(WorkflowDefinitionError, match="Invalid YAML"):
            load_workflow(path)


class TestParseWorkflow:
    def test_rejects_non_mapping(self):
        with pytest.raises(WorkflowDefinitionError):
            parse_workflow(["not", "a", "mapping"])

    def test_rejects_missing_required_fields(self):
        with pytest.raises(WorkflowDefinitionError, match="Invalid workflow definition"):
            parse_workflow({"id": "x", "steps": []})

    def test_expands_env_vars_in_static_args(self, monkeypatch):
        monkeypatch.setenv("SEARCH_API_KEY", "k-123")

        workflow = parse_workflow({
            "id": "x",
            "name": "Env",
            "steps": [{"id": "s", "tool_name": "search", "static_args": {"api_key": "${SEARCH_API_KEY}"}}],
        })

        assert workflow.steps[0].static_args == {"api_key": "k-123"}

    def test_fallback_value_not_declared(self):
        workflow = parse_workflow({"id": "x", "name": "n", "steps": [{"id": "s", "tool_name": "t"}]})

        assert workflow.steps[0].has_fallback_value is False
        assert workflow.steps[0].on_error == "abort"
