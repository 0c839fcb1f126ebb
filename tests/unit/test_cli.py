"""Tests for the tool-composer CLI commands."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tool_composer.cli.main import cli


GREETING_WORKFLOW = """
id: greeting
name: Greeting
description: Build a greeting from the input words
steps:
  - id: words
    tool_name: echo
    bindings:
      - {source: input, source_path: words, target: words}
  - id: greet
    tool_name: concat
    depends_on: [words]
    static_args: {separator: " "}
    bindings:
      - {source: words, source_path: words, target: parts}
"""

CYCLIC_WORKFLOW = """
id: cyclic
name: Cyclic
description: Two steps waiting on each other
steps:
  - {id: a, tool_name: echo, depends_on: [b]}
  - {id: b, tool_name: echo, depends_on: [a]}
"""


@pytest.fixture
def write_workflow(tmp_path):
    def _write(content: str) -> Path:
        path = tmp_path / "workflow.yaml"
        path.write_text(content)
        return path

    return _write


def invoke(*args):
    runner = CliRunner()
    # Handlers would otherwise keep CliRunner's closed stderr around
    with patch("tool_composer.cli.main.setup_rich_logging"):
        return runner.invoke(cli, ["--config", "does-not-exist.yaml", *args])


class TestValidateCommand:
    def test_valid_workflow(self, write_workflow):
        result = invoke("validate", str(write_workflow(GREETING_WORKFLOW)))

        assert result.exit_code == 0
        assert "is valid" in result.output
        assert "2 levels" in result.output

    def test_cyclic_workflow_fails(self, write_workflow):
        result = invoke("validate", str(write_workflow(CYCLIC_WORKFLOW)))

        assert result.exit_code == 1
        assert "loop" in result.output

    def test_missing_file(self, tmp_path):
        result = invoke("validate", str(tmp_path / "missing.yaml"))

        assert result.exit_code == 1
        assert "not found" in result.output


class TestPlanCommand:
    def test_plan_lists_levels(self, write_workflow):
        result = invoke("plan", str(write_workflow(GREETING_WORKFLOW)))

        assert result.exit_code == 0
        assert "words" in result.output
        assert "concat" in result.output


class TestRunCommand:
    def test_run_prints_output(self, write_workflow):
        path = write_workflow(GREETING_WORKFLOW)

        result = invoke("run", str(path), "--input", '{"words": ["Hello", "Ada"]}')

        assert result.exit_code == 0, result.output
        assert "Hello Ada" in result.output

    def test_run_failure_exits_nonzero(self, write_workflow):
        path = write_workflow(GREETING_WORKFLOW)

        result = invoke("run", str(path), "--input", '{"words": "not-a-list"}')

        assert result.exit_code == 1
        assert "A step failed" in result.output

    def test_invalid_input_json(self, write_workflow):
        result = invoke("run", str(write_workflow(GREETING_WORKFLOW)), "--input", "{oops")

        assert result.exit_code == 1
        assert "not valid JSON" in result.output

    def test_input_must_be_object(self, write_workflow):
        result = invoke("run", str(write_workflow(GREETING_WORKFLOW)), "--input", "[1, 2]")

        assert result.exit_code == 1

    def test_json_output_is_the_full_result(self, write_workflow):
        path = write_workflow(GREETING_WORKFLOW)

        result = invoke("run", str(path), "--input", '{"words": ["Hello", "Ada"]}', "--json")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["success"] is True
        assert payload["workflow_id"] == "greeting"
        assert [step["step_id"] for step in payload["step_results"]] == ["words", "greet"]

    def test_json_output_on_failure_exits_nonzero(self, write_workflow):
        path = write_workflow(GREETING_WORKFLOW)

        result = invoke("run", str(path), "--input", '{"words": "not-a-list"}', "--json")

        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["success"] is False
        assert payload["error"]


def test_shipped_example_workflow_runs():
    example = Path(__file__).resolve().parents[2] / "config" / "workflows" / "greeting.yaml"

    result = invoke("run", str(example), "--input", '{"words": ["Hello", "world"]}')

    assert result.exit_code == 0, result.output
    assert "Hello world" in result.output
