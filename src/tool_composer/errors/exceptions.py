"""Exception hierarchy for workflow loading and execution."""

from typing import Optional


class ComposerError(Exception):
    """Base class for all tool-composer errors."""


class WorkflowDefinitionError(ComposerError):
    """A workflow file or mapping could not be turned into a Workflow."""


class WorkflowRunError(ComposerError):
    """Run-level failure. Raised inside the level loop, reported in the result."""


class WorkflowTimeoutError(WorkflowRunError):
    def __init__(self, timeout_ms: int, elapsed_ms: int):
        super().__init__(f"Workflow timeout exceeded ({elapsed_ms}ms elapsed, limit {timeout_ms}ms)")
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms


class WorkflowAbortedError(WorkflowRunError):
    def __init__(self, workflow_id: str, reason: Optional[str] = None):
        message = "Workflow was aborted"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.workflow_id = workflow_id
        self.reason = reason


class TokenBudgetExceededError(WorkflowRunError):
    def __init__(self, budget: int, used: int):
        super().__init__(f"Token budget exceeded ({used} used, budget {budget})")
        self.budget = budget
        self.used = used


class StepFailedError(WorkflowRunError):
    def __init__(self, step_id: str, error: Optional[str]):
        super().__init__(f"Step {step_id} failed: {error}")
        self.step_id = step_id
        self.error = error
