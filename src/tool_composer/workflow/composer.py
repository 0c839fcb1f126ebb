"""Tool composer: runs validated workflows level by level.

Levels execute strictly in order; the steps of a level run concurrently in
fixed-size batches of at most ``max_parallel``. Context writes happen only
after a batch has fully resolved, so later levels always see every output
of earlier levels without any locking.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.config import ComposerConfig
from ..errors import (
    StepFailedError,
    TokenBudgetExceededError,
    WorkflowAbortedError,
    WorkflowRunError,
    WorkflowTimeoutError,
)
from ..tools.registry import ToolDefinition, ToolExecutionResult, ToolRegistryProtocol
from ..utils.rich_logging import ContextLogger
from .cancellation import CancellationToken
from .models import (
    INPUT_SOURCE,
    ErrorPolicy,
    ExecutionContext,
    ExecutionOptions,
    ProgressCallback,
    StepExecutionResult,
    Workflow,
    WorkflowExecutionResult,
    WorkflowProgress,
    WorkflowStep,
)
from .transformer import DataTransformer, loads_strict
from .validator import WorkflowValidator

logger = logging.getLogger(__name__)


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


@dataclass
class _ActiveRun:
    """Bookkeeping for one in-flight run, visible to abort()/get_status()."""
    context: ExecutionContext
    start_time: float
    token: CancellationToken
    total_steps: int
    completed_steps: int = 0


class ToolComposer:
    """Executes composition workflows: chains of tools wired by data bindings."""

    def __init__(
        self,
        tool_registry: ToolRegistryProtocol,
        validator: Optional[WorkflowValidator] = None,
        transformer: Optional[DataTransformer] = None,
        config: Optional[ComposerConfig] = None,
    ):
        self.config = config or ComposerConfig()
        self.tool_registry = tool_registry
        self.validator = validator or WorkflowValidator(self.config)
        self.transformer = transformer or DataTransformer()
        self._active_runs: Dict[str, _ActiveRun] = {}

    async def execute(
        self,
        workflow: Workflow,
        input_data: Optional[Dict[str, Any]] = None,
        options: Optional[ExecutionOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> WorkflowExecutionResult:
        """Validate and run ``workflow``. Always returns a result, never raises."""
        start_time = time.monotonic()
        options = options or ExecutionOptions()
        input_data = input_data if input_data is not None else {}
        on_progress = on_progress or options.on_progress
        run_logger = ContextLogger(logger, workflow.id)

        try:
            validation = self.validator.validate(workflow)
            if not validation.valid:
                run_logger.error(f"Workflow validation failed: {[e.code for e in validation.errors]}")
                return self._rejected(workflow.id, "; ".join(e.message for e in validation.errors), start_time)

            available_tools = {tool.name for tool in self.tool_registry.list()}
            tool_errors = self.validator.validate_dependencies_exist(workflow.steps, available_tools)
            if tool_errors:
                run_logger.error(f"Workflow tool validation failed: {[e.message for e in tool_errors]}")
                return self._rejected(workflow.id, "; ".join(e.message for e in tool_errors), start_time)
        except Exception as e:
            run_logger.exception(f"Unexpected error while validating workflow: {e}")
            return self._rejected(workflow.id, f"Unexpected error: {e}", start_time)

        if workflow.id in self._active_runs:
            run_logger.warning("Workflow is already running, refusing concurrent execution")
            return self._rejected(workflow.id, f"Workflow {workflow.id} is already running", start_time)

        context = ExecutionContext(
            workflow_id=workflow.id,
            input=input_data,
            variables={INPUT_SOURCE: input_data},
            started_at=start_time,
        )
        active = _ActiveRun(
            context=context,
            start_time=start_time,
            token=CancellationToken(),
            total_steps=len(workflow.steps),
        )
        self._active_runs[workflow.id] = active

        execution_order = validation.execution_order
        steps_by_id = {step.id: step for step in workflow.steps}
        max_parallel = max(1, options.max_parallel or self.config.default_max_parallel)
        step_results: List[StepExecutionResult] = []
        last_output: Any = None

        try:
            run_logger.run_started(workflow.name, len(workflow.steps), len(execution_order))

            for level_index, level in enumerate(execution_order):
                self._check_run_limits(workflow, options, active)

                context.current_step = level[0]
                run_logger.level_started(level_index, level)
                if on_progress:
                    self._report_progress(on_progress, workflow, active, len(step_results), level[0])

                level_results: List[StepExecutionResult] = []
                for batch_start in range(0, len(level), max_parallel):
                    batch = level[batch_start:batch_start + max_parallel]
                    batch_results = await asyncio.gather(*(
                        self._run_step_guarded(steps_by_id[step_id], context, options, run_logger)
                        for step_id in batch
                    ))
                    level_results.extend(batch_results)
                    active.completed_steps += len(batch_results)

                    for result in batch_results:
                        if result.success and not result.skipped:
                            step = steps_by_id[result.step_id]
                            context.variables[step.output_key] = result.output
                            context.step_outputs[result.step_id] = result.output
                            last_output = result.output

                    for result in batch_results:
                        if result.success or result.skipped:
                            continue
                        step = steps_by_id[result.step_id]
                        if step.on_error == ErrorPolicy.ABORT and not options.continue_on_error:
                            step_results.extend(level_results)
                            raise StepFailedError(result.step_id, result.error)

                step_results.extend(level_results)

            output = self._extract_output(workflow, context, last_output)
            duration_ms = _elapsed_ms(start_time)
            run_logger.run_completed(duration_ms, len(step_results), context.tokens_used)

            return WorkflowExecutionResult(
                workflow_id=workflow.id,
                success=True,
                output=output,
                step_results=step_results,
                total_duration_ms=duration_ms,
                tokens_used=context.tokens_used,
            )
        except WorkflowRunError as e:
            return self._failed(workflow.id, str(e), step_results, context, start_time, run_logger)
        except Exception as e:
            run_logger.exception(f"Unexpected error while running workflow: {e}")
            return self._failed(workflow.id, f"Unexpected error: {e}", step_results, context, start_time, run_logger)
        finally:
            if self._active_runs.get(workflow.id) is active:
                del self._active_runs[workflow.id]

    def _check_run_limits(self, workflow: Workflow, options: ExecutionOptions, active: _ActiveRun) -> None:
        """Level-boundary checks: timeout, abort, then token budget."""
        timeout_ms = workflow.timeout_ms or options.timeout_ms
        elapsed_ms = _elapsed_ms(active.start_time)
        if timeout_ms and elapsed_ms > timeout_ms:
            raise WorkflowTimeoutError(timeout_ms, elapsed_ms)

        if active.token.cancelled:
            raise WorkflowAbortedError(workflow.id, active.token.reason)

        token_budget = workflow.token_budget or options.token_budget
        if token_budget and active.context.tokens_used > token_budget:
            raise TokenBudgetExceededError(token_budget, active.context.tokens_used)

    def _report_progress(
        self,
        callback: ProgressCallback,
        workflow: Workflow,
        active: _ActiveRun,
        completed_steps: int,
        current_step: str,
    ) -> None:
        total_steps = len(workflow.steps)
        elapsed_ms = _elapsed_ms(active.start_time)
        estimated = None
        if completed_steps > 0:
            estimated = _round_half_up(elapsed_ms / completed_steps * (total_steps - completed_steps))

        progress = WorkflowProgress(
            workflow_id=workflow.id,
            total_steps=total_steps,
            completed_steps=completed_steps,
            current_step=current_step,
            percentage=_round_half_up(completed_steps / total_steps * 100),
            elapsed_ms=elapsed_ms,
            estimated_remaining_ms=estimated,
        )
        try:
            callback(progress)
        except Exception as e:
            logger.warning(f"Progress callback raised for workflow {workflow.id}: {e}")

    async def _run_step_guarded(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        options: ExecutionOptions,
        run_logger: ContextLogger,
    ) -> StepExecutionResult:
        """A step that raises becomes a failed result so its batch siblings survive."""
        started = time.monotonic()
        try:
            return await self._execute_step(step, context, options, run_logger)
        except Exception as e:
            run_logger.exception(f"Step raised unexpectedly: {e}", extra={"step_id": step.id})
            return StepExecutionResult(
                step_id=step.id,
                success=False,
                error=f"Unexpected error: {str(e) or type(e).__name__}",
                duration_ms=_elapsed_ms(started),
            )

    async def _execute_step(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        options: ExecutionOptions,
        run_logger: ContextLogger,
    ) -> StepExecutionResult:
        """Run one step through condition, argument binding, retries and policy."""
        started = time.monotonic()
        log_extra = {"step_id": step.id}

        if step.condition and not self.transformer.evaluate_condition(step.condition, context.variables):
            run_logger.info(f"Skipping step: condition not met ({step.condition})", extra=log_extra)
            return StepExecutionResult(
                step_id=step.id,
                success=True,
                skipped=True,
                skip_reason=f"Condition not met: {step.condition}",
                duration_ms=_elapsed_ms(started),
            )

        try:
            args = self.transformer.deep_copy(step.static_args) if step.static_args else {}
            if step.bindings:
                resolved = self.transformer.resolve_bindings(step.bindings, context.variables)
                args = self.transformer.merge_args(args, resolved)
        except Exception as e:
            return StepExecutionResult(
                step_id=step.id,
                success=False,
                error=f"Failed to resolve arguments: {e}",
                duration_ms=_elapsed_ms(started),
            )

        tool = self.tool_registry.get_definition(step.tool_name)
        if tool is None:
            return StepExecutionResult(
                step_id=step.id,
                success=False,
                error=f"Tool not found: {step.tool_name}",
                duration_ms=_elapsed_ms(started),
            )

        if options.tool_context is None:
            return StepExecutionResult(
                step_id=step.id,
                success=False,
                error="Tool execution context required for workflow execution",
                duration_ms=_elapsed_ms(started),
            )

        if step.on_error == ErrorPolicy.RETRY:
            max_attempts = step.retry_count if step.retry_count and step.retry_count > 0 else self.config.default_retry_count
        else:
            max_attempts = 1

        last_error: Optional[str] = None
        attempts = 0
        for attempt in range(max_attempts):
            attempts = attempt + 1
            try:
                result = await self._invoke_tool(tool, args, options)
                context.tokens_used += getattr(result, "tokens_used", 0) or 0
                if result.success:
                    return StepExecutionResult(
                        step_id=step.id,
                        success=True,
                        output=self._parse_output(result.output),
                        duration_ms=_elapsed_ms(started),
                        attempts=attempts,
                    )
                last_error = result.output
            except asyncio.TimeoutError:
                last_error = f"Tool {step.tool_name} timed out after {options.step_timeout_ms}ms"
            except Exception as e:
                last_error = str(e) or type(e).__name__

            if attempt < max_attempts - 1:
                backoff_ms = self.config.retry_backoff_ms * (attempt + 1)
                run_logger.warning(
                    f"Attempt {attempts}/{max_attempts} failed: {last_error}. Retrying in {backoff_ms}ms",
                    extra=log_extra,
                )
                await asyncio.sleep(backoff_ms / 1000)

        if step.on_error == ErrorPolicy.FALLBACK:
            run_logger.info(f"Step failed, using fallback value: {last_error}", extra=log_extra)
            return StepExecutionResult(
                step_id=step.id,
                success=True,
                output=step.fallback_value,
                duration_ms=_elapsed_ms(started),
                attempts=attempts,
            )

        if step.on_error == ErrorPolicy.SKIP:
            run_logger.info(f"Step failed and was skipped: {last_error}", extra=log_extra)
            return StepExecutionResult(
                step_id=step.id,
                success=True,
                skipped=True,
                skip_reason=f"Step failed and was skipped: {last_error}",
                duration_ms=_elapsed_ms(started),
                attempts=attempts,
            )

        run_logger.warning(f"Step failed after {attempts} attempt(s): {last_error}", extra=log_extra)
        return StepExecutionResult(
            step_id=step.id,
            success=False,
            error=last_error,
            duration_ms=_elapsed_ms(started),
            attempts=attempts,
        )

    async def _invoke_tool(
        self, tool: ToolDefinition, args: Dict[str, Any], options: ExecutionOptions
    ) -> ToolExecutionResult:
        outcome = tool.execute(args, options.tool_context)
        if inspect.isawaitable(outcome):
            if options.step_timeout_ms:
                outcome = await asyncio.wait_for(outcome, timeout=options.step_timeout_ms / 1000)
            else:
                outcome = await outcome
        return outcome

    @staticmethod
    def _parse_output(output: Any) -> Any:
        """JSON text becomes structured data; anything else is kept as-is."""
        if isinstance(output, str):
            try:
                return loads_strict(output)
            except (ValueError, RecursionError):
                return output
        return output

    def _extract_output(self, workflow: Workflow, context: ExecutionContext, last_output: Any) -> Any:
        if not workflow.output_extraction:
            return last_output

        extracted: Dict[str, Any] = {}
        for binding in workflow.output_extraction:
            value = self.transformer.apply_binding(binding, context.variables)
            self.transformer.set_value(extracted, binding.target, value)
        return extracted

    def _rejected(self, workflow_id: str, error: str, start_time: float) -> WorkflowExecutionResult:
        """Result for a run refused before any context was built."""
        return WorkflowExecutionResult(
            workflow_id=workflow_id,
            success=False,
            error=error,
            step_results=[],
            total_duration_ms=_elapsed_ms(start_time),
            tokens_used=0,
        )

    def _failed(
        self,
        workflow_id: str,
        error: str,
        step_results: List[StepExecutionResult],
        context: ExecutionContext,
        start_time: float,
        run_logger: ContextLogger,
    ) -> WorkflowExecutionResult:
        run_logger.run_failed(error, len(step_results))
        return WorkflowExecutionResult(
            workflow_id=workflow_id,
            success=False,
            error=error,
            step_results=step_results,
            total_duration_ms=_elapsed_ms(start_time),
            tokens_used=context.tokens_used,
        )

    def abort(self, workflow_id: str, reason: Optional[str] = None) -> bool:
        """Request cancellation; observed at the next level boundary.

        ``reason``, when given, is appended to the run's error message.
        """
        active = self._active_runs.get(workflow_id)
        if active is None:
            return False
        active.token.cancel(reason)
        logger.info(f"Workflow {workflow_id} abort requested" + (f": {reason}" if reason else ""))
        return True

    def get_status(self, workflow_id: str) -> Optional[WorkflowProgress]:
        active = self._active_runs.get(workflow_id)
        if active is None:
            return None

        completed = active.completed_steps
        return WorkflowProgress(
            workflow_id=workflow_id,
            total_steps=active.total_steps,
            completed_steps=completed,
            current_step=active.context.current_step,
            percentage=_round_half_up(completed / active.total_steps * 100) if active.total_steps else 0,
            elapsed_ms=_elapsed_ms(active.start_time),
        )

    def is_active(self, workflow_id: str) -> bool:
        return workflow_id in self._active_runs

    def get_active_workflow_ids(self) -> List[str]:
        return list(self._active_runs)
