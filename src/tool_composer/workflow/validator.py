"""Workflow validation and topological leveling."""

import logging
from collections import deque
from typing import Dict, List, Optional, Set

from ..core.config import ComposerConfig
from .models import (
    INPUT_SOURCE,
    VALID_ERROR_POLICIES,
    VALID_TRANSFORMS,
    ErrorPolicy,
    ValidationIssue,
    Workflow,
    WorkflowStep,
    WorkflowValidationResult,
)

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 5


class WorkflowValidator:
    """Structural and semantic validation of a workflow definition.

    Stateless apart from its limits; results are never cached, so the same
    definition always validates to the same result.
    """

    def __init__(self, config: Optional[ComposerConfig] = None):
        config = config or ComposerConfig()
        self.max_steps = config.max_steps
        self.max_depth = config.max_depth
        self.max_parallel_branches = config.max_parallel_branches

    def validate(self, workflow: Workflow) -> WorkflowValidationResult:
        """Validate a workflow and compute its leveled execution order."""
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        self._validate_basic_fields(workflow, errors, warnings)
        self._validate_steps(workflow.steps, errors, warnings)
        self._validate_binding_sources(workflow, errors, warnings)
        self._check_circular_dependencies(workflow.steps, errors)

        execution_order = None
        if not errors:
            execution_order = self.compute_execution_order(workflow.steps)
            if execution_order is None:
                errors.append(ValidationIssue(
                    code="EXECUTION_ORDER_FAILED",
                    message="Failed to compute valid execution order (possible circular dependencies)",
                ))

        self._validate_complexity(workflow, execution_order, errors, warnings)

        valid = not errors
        if not valid:
            logger.debug(f"Workflow '{workflow.id}' failed validation with {len(errors)} error(s)")
        return WorkflowValidationResult(
            valid=valid,
            errors=errors,
            warnings=warnings,
            execution_order=execution_order if valid else None,
        )

    def _validate_basic_fields(self, workflow, errors, warnings) -> None:
        if not workflow.id or not workflow.id.strip():
            errors.append(ValidationIssue("MISSING_ID", "Workflow must have an ID", field="id"))

        if not workflow.name or not workflow.name.strip():
            errors.append(ValidationIssue("MISSING_NAME", "Workflow must have a name", field="name"))

        if not workflow.steps:
            errors.append(ValidationIssue("NO_STEPS", "Workflow must have at least one step", field="steps"))
        elif len(workflow.steps) > self.max_steps:
            errors.append(ValidationIssue(
                "TOO_MANY_STEPS",
                f"Workflow has too many steps ({len(workflow.steps)}, max: {self.max_steps})",
                field="steps",
            ))

        if not workflow.description or len(workflow.description) < MIN_DESCRIPTION_LENGTH:
            warnings.append(ValidationIssue(
                "SHORT_DESCRIPTION", "Consider adding a more detailed description", field="description",
            ))

    def _validate_steps(self, steps: List[WorkflowStep], errors, warnings) -> None:
        seen: Set[str] = set()
        for step in steps:
            if step.id in seen:
                errors.append(ValidationIssue(
                    "DUPLICATE_STEP_ID", f"Duplicate step ID: {step.id}", step_id=step.id, field="id",
                ))
            seen.add(step.id)
            self._validate_step(step, errors, warnings)

        all_ids = {step.id for step in steps}
        for step in steps:
            for dep_id in step.depends_on:
                if dep_id and dep_id.strip() and dep_id not in all_ids:
                    errors.append(ValidationIssue(
                        "DEPENDENCY_NOT_FOUND",
                        f'Dependency "{dep_id}" not found in workflow',
                        step_id=step.id,
                        field="depends_on",
                    ))

    def _validate_step(self, step: WorkflowStep, errors, warnings) -> None:
        if not step.id or not step.id.strip():
            errors.append(ValidationIssue("MISSING_STEP_ID", "Step must have an ID", field="id"))

        if not step.tool_name or not step.tool_name.strip():
            errors.append(ValidationIssue(
                "MISSING_TOOL_NAME", "Step must specify a tool", step_id=step.id, field="tool_name",
            ))

        for dep_id in step.depends_on:
            if not dep_id or not dep_id.strip():
                errors.append(ValidationIssue(
                    "INVALID_DEPENDENCY", "Empty dependency reference", step_id=step.id, field="depends_on",
                ))

        for binding in step.bindings:
            if not binding.source or not binding.target:
                errors.append(ValidationIssue(
                    "INVALID_BINDING", "Binding must have source and target", step_id=step.id, field="bindings",
                ))

            if binding.transform and binding.transform not in VALID_TRANSFORMS:
                warnings.append(ValidationIssue(
                    "UNKNOWN_TRANSFORM",
                    f'Unknown transform "{binding.transform}" will pass values through unchanged',
                    step_id=step.id,
                    field="bindings",
                ))

        if step.on_error not in VALID_ERROR_POLICIES:
            errors.append(ValidationIssue(
                "INVALID_ERROR_HANDLER",
                f"Invalid on_error value: {step.on_error}",
                step_id=step.id,
                field="on_error",
            ))

        if step.on_error == ErrorPolicy.RETRY and (not step.retry_count or step.retry_count < 1):
            warnings.append(ValidationIssue(
                "MISSING_RETRY_COUNT",
                "Retry error handler should specify retry_count",
                step_id=step.id,
                field="retry_count",
            ))

        if step.on_error == ErrorPolicy.FALLBACK and not step.has_fallback_value:
            warnings.append(ValidationIssue(
                "MISSING_FALLBACK_VALUE",
                "Fallback error handler should specify fallback_value",
                step_id=step.id,
                field="fallback_value",
            ))

    def _validate_binding_sources(self, workflow: Workflow, errors, warnings) -> None:
        """Binding sources must be "input", a step id or a step's output_as name."""
        owners: Dict[str, str] = {step.id: step.id for step in workflow.steps}
        for step in workflow.steps:
            if step.output_as:
                owners.setdefault(step.output_as, step.id)

        for step in workflow.steps:
            for binding in step.bindings:
                if not binding.source or binding.source == INPUT_SOURCE:
                    continue
                owner = owners.get(binding.source)
                if owner is None:
                    errors.append(ValidationIssue(
                        "INVALID_BINDING",
                        f'Binding source "{binding.source}" is not a step or output name',
                        step_id=step.id,
                        field="bindings",
                    ))
                elif owner not in step.depends_on:
                    # Allowed, but the source may not have run yet when this step starts
                    warnings.append(ValidationIssue(
                        "BINDING_SOURCE_NOT_DEPENDENCY",
                        f'Binding source "{binding.source}" is not in depends_on',
                        step_id=step.id,
                        field="bindings",
                    ))

        for binding in workflow.output_extraction or []:
            if not binding.source or not binding.target:
                errors.append(ValidationIssue(
                    "INVALID_BINDING", "Output binding must have source and target", field="output_extraction",
                ))
            elif binding.source != INPUT_SOURCE and binding.source not in owners:
                errors.append(ValidationIssue(
                    "INVALID_BINDING",
                    f'Output binding source "{binding.source}" is not a step or output name',
                    field="output_extraction",
                ))

    def _check_circular_dependencies(self, steps: List[WorkflowStep], errors) -> None:
        """DFS over depends_on; reports only the first cycle found.

        Uses an explicit stack so long dependency chains cannot exhaust the
        interpreter's recursion limit.
        """
        step_map: Dict[str, WorkflowStep] = {step.id: step for step in steps}
        visited: Set[str] = set()
        on_stack: Set[str] = set()

        def dependencies(step_id: str):
            step = step_map.get(step_id)
            return iter(step.depends_on if step else ())

        def has_cycle(root_id: str) -> bool:
            if root_id in visited:
                return False

            visited.add(root_id)
            on_stack.add(root_id)
            stack = [(root_id, dependencies(root_id))]
            while stack:
                step_id, pending = stack[-1]
                for dep_id in pending:
                    if dep_id in on_stack:
                        return True
                    if dep_id not in visited:
                        visited.add(dep_id)
                        on_stack.add(dep_id)
                        stack.append((dep_id, dependencies(dep_id)))
                        break
                else:
                    on_stack.discard(step_id)
                    stack.pop()
            return False

        for step in steps:
            if has_cycle(step.id):
                errors.append(ValidationIssue(
                    "CIRCULAR_DEPENDENCY",
                    f"Circular dependency detected involving step: {step.id}",
                    step_id=step.id,
                ))
                break

    def compute_execution_order(self, steps: List[WorkflowStep]) -> Optional[List[List[str]]]:
        """Kahn's algorithm, taking the whole ready set as one level.

        Returns None when some steps can never become ready (a cycle).
        """
        in_degree: Dict[str, int] = {}
        dependents: Dict[str, List[str]] = {}
        position: Dict[str, int] = {}
        for index, step in enumerate(steps):
            position.setdefault(step.id, index)
            in_degree[step.id] = len(step.depends_on)
            dependents[step.id] = []

        for step in steps:
            for dep_id in step.depends_on:
                if dep_id in dependents:
                    dependents[dep_id].append(step.id)

        levels: List[List[str]] = []
        ready = deque(step_id for step_id, degree in in_degree.items() if degree == 0)

        while ready:
            level = sorted(ready, key=position.__getitem__)
            levels.append(level)
            ready.clear()

            for step_id in level:
                for dependent in dependents[step_id]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        ready.append(dependent)

        processed = sum(len(level) for level in levels)
        if processed != len(steps):
            return None

        return levels

    def _validate_complexity(self, workflow, execution_order, errors, warnings) -> None:
        if execution_order is not None:
            if len(execution_order) > self.max_depth:
                errors.append(ValidationIssue(
                    "TOO_DEEP",
                    f"Workflow is too deep ({len(execution_order)} levels, max: {self.max_depth})",
                ))

            for level in execution_order:
                if len(level) > self.max_parallel_branches:
                    warnings.append(ValidationIssue(
                        "HIGH_PARALLELISM",
                        f"Level has {len(level)} parallel steps (max recommended: {self.max_parallel_branches})",
                    ))

        for step in workflow.steps:
            if step.id in step.depends_on:
                errors.append(ValidationIssue(
                    "SELF_DEPENDENCY", f'Step "{step.id}" depends on itself', step_id=step.id,
                ))

    def validate_dependencies_exist(self, steps: List[WorkflowStep], available_tools: Set[str]) -> List[ValidationIssue]:
        """Check tools and dependencies against the live tool set."""
        errors: List[ValidationIssue] = []
        step_ids = {step.id for step in steps}

        for step in steps:
            if step.tool_name not in available_tools:
                errors.append(ValidationIssue(
                    "TOOL_NOT_FOUND",
                    f'Tool "{step.tool_name}" not found',
                    step_id=step.id,
                    field="tool_name",
                ))

            for dep_id in step.depends_on:
                if dep_id not in step_ids:
                    errors.append(ValidationIssue(
                        "DEPENDENCY_NOT_FOUND",
                        f'Dependency "{dep_id}" not found in workflow',
                        step_id=step.id,
                        field="depends_on",
                    ))

        return errors
