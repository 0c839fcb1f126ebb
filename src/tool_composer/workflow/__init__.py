"""Workflow engine: validation, data wiring and leveled tool execution."""

from .cancellation import CancellationToken
from .composer import ToolComposer
from .conditions import ConditionSyntaxError, compile_condition, evaluate_condition
from .loader import load_workflow, parse_workflow
from .models import (
    DataBinding,
    ErrorPolicy,
    ExecutionContext,
    ExecutionOptions,
    StepExecutionResult,
    TransformType,
    ValidationIssue,
    Workflow,
    WorkflowExecutionResult,
    WorkflowProgress,
    WorkflowStep,
    WorkflowValidationResult,
)
from .transformer import DataTransformer
from .validator import WorkflowValidator

__all__ = [
    "CancellationToken",
    "ConditionSyntaxError",
    "DataBinding",
    "DataTransformer",
    "ErrorPolicy",
    "ExecutionContext",
    "ExecutionOptions",
    "StepExecutionResult",
    "ToolComposer",
    "TransformType",
    "ValidationIssue",
    "Workflow",
    "WorkflowExecutionResult",
    "WorkflowProgress",
    "WorkflowStep",
    "WorkflowValidationResult",
    "WorkflowValidator",
    "compile_condition",
    "evaluate_condition",
    "load_workflow",
    "parse_workflow",
]
