"""Main CLI for the tool composer."""

import asyncio
import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..core.config import load_config
from ..errors import WorkflowDefinitionError
from ..errors.translator import ErrorTranslator
from ..tools import ToolExecutionContext, ToolRegistry, register_builtin_tools
from ..utils.rich_logging import setup_rich_logging
from ..workflow import ExecutionOptions, ToolComposer, WorkflowValidator, load_workflow


console = Console()


def _load_or_exit(workflow_file: str):
    try:
        return load_workflow(Path(workflow_file))
    except WorkflowDefinitionError as e:
        console.print(f"[red]Error: {e}[/]")
        sys.exit(1)


def _print_issues(result, translator: ErrorTranslator) -> None:
    if not result.errors and not result.warnings:
        return

    table = Table(title="Validation issues")
    table.add_column("Severity")
    table.add_column("Code")
    table.add_column("Step")
    table.add_column("Message")

    for issue in result.errors:
        table.add_row("[red]error[/]", issue.code, issue.step_id or "", issue.message)
    for warning in result.warnings:
        table.add_row("[yellow]warning[/]", warning.code, warning.step_id or "", warning.message)

    console.print(table)

    # Explain each distinct error code once
    for code in dict.fromkeys(issue.code for issue in result.errors):
        issue = next(i for i in result.errors if i.code == code)
        console.print(translator.format_for_cli(translator.translate_issue(issue)))


@click.group()
@click.option("--config", "-c", "config_path", default="tool-composer.yaml", help="Composer config file")
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def cli(ctx, config_path, log_level):
    """Tool Composer - run chains of tools as validated workflows."""
    ctx.ensure_object(dict)
    config = load_config(Path(config_path))
    setup_rich_logging(log_level=log_level or config.log_level)
    ctx.obj["config"] = config


@cli.command()
@click.argument("workflow_file", type=click.Path())
@click.pass_context
def validate(ctx, workflow_file):
    """Validate a workflow definition."""
    workflow = _load_or_exit(workflow_file)
    result = WorkflowValidator(ctx.obj["config"]).validate(workflow)

    _print_issues(result, ErrorTranslator())
    if not result.valid:
        console.print(f"[red]✗ Workflow '{workflow.id}' is invalid ({len(result.errors)} errors)[/]")
        sys.exit(1)

    console.print(
        f"[green]✓ Workflow '{workflow.id}' is valid: "
        f"{len(workflow.steps)} steps in {len(result.execution_order)} levels[/]"
    )


@cli.command()
@click.argument("workflow_file", type=click.Path())
@click.pass_context
def plan(ctx, workflow_file):
    """Show the leveled execution order of a workflow."""
    workflow = _load_or_exit(workflow_file)
    result = WorkflowValidator(ctx.obj["config"]).validate(workflow)
    if not result.valid:
        _print_issues(result, ErrorTranslator())
        sys.exit(1)

    table = Table(title=f"Execution plan: {workflow.name}")
    table.add_column("Level")
    table.add_column("Step")
    table.add_column("Tool")
    table.add_column("On error")
    table.add_column("Condition")

    for index, level in enumerate(result.execution_order):
        for step_id in level:
            step = workflow.get_step(step_id)
            table.add_row(str(index), step.id, step.tool_name, step.on_error, step.condition or "")

    console.print(table)


@cli.command()
@click.argument("workflow_file", type=click.Path())
@click.option("--input", "-i", "input_json", default="{}", help="Workflow input as a JSON object")
@click.option("--max-parallel", type=int, default=None, help="Max steps run concurrently per batch")
@click.option("--continue-on-error", is_flag=True, help="Keep going when an abort-policy step fails")
@click.option("--json", "json_output", is_flag=True, help="Print the full run result as JSON")
@click.pass_context
def run(ctx, workflow_file, input_json, max_parallel, continue_on_error, json_output):
    """Run a workflow with the built-in tools."""
    config = ctx.obj["config"]
    workflow = _load_or_exit(workflow_file)

    try:
        input_data = json.loads(input_json)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: --input is not valid JSON: {e}[/]")
        sys.exit(1)
    if not isinstance(input_data, dict):
        console.print("[red]Error: --input must be a JSON object[/]")
        sys.exit(1)

    registry = register_builtin_tools(ToolRegistry())
    composer = ToolComposer(registry, config=config)
    options = ExecutionOptions(
        max_parallel=max_parallel,
        continue_on_error=continue_on_error,
        tool_context=ToolExecutionContext(workspace_path=Path.cwd()),
    )

    def on_progress(progress):
        console.print(
            f"[dim]{progress.percentage:3d}% ({progress.completed_steps}/{progress.total_steps}) "
            f"-> {progress.current_step}[/]"
        )

    result = asyncio.run(composer.execute(
        workflow, input_data, options, on_progress=None if json_output else on_progress
    ))

    if json_output:
        click.echo(json.dumps(result.to_dict(), default=str, indent=2))
        sys.exit(0 if result.success else 1)

    table = Table(title=f"Run: {workflow.name}")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Attempts")
    table.add_column("Duration")

    for step_result in result.step_results:
        if step_result.skipped:
            status = f"[yellow]skipped[/] {step_result.skip_reason or ''}"
        elif step_result.success:
            status = "[green]ok[/]"
        else:
            status = f"[red]failed[/] {step_result.error or ''}"
        table.add_row(step_result.step_id, status, str(step_result.attempts), f"{step_result.duration_ms}ms")

    console.print(table)

    if not result.success:
        translator = ErrorTranslator()
        console.print(translator.format_for_cli(translator.translate(result.error or "")))
        sys.exit(1)

    console.print(f"[green]✓ Workflow completed in {result.total_duration_ms}ms[/]")
    console.print_json(json.dumps(result.output, default=str))


if __name__ == "__main__":
    cli()
