"""Error types and user-friendly translation."""

from .exceptions import (
    ComposerError,
    StepFailedError,
    TokenBudgetExceededError,
    WorkflowAbortedError,
    WorkflowDefinitionError,
    WorkflowRunError,
    WorkflowTimeoutError,
)

__all__ = [
    "ComposerError",
    "StepFailedError",
    "TokenBudgetExceededError",
    "WorkflowAbortedError",
    "WorkflowDefinitionError",
    "WorkflowRunError",
    "WorkflowTimeoutError",
]
