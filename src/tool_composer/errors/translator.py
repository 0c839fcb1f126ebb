"""Translate workflow errors to user-friendly messages."""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from ..workflow.models import ValidationIssue


@dataclass
class UserFriendlyError:
    """User-friendly error representation."""
    title: str
    explanation: str
    actions: List[str] = field(default_factory=list)
    technical: Optional[str] = None


class ErrorTranslator:
    """Translate validation issues and run errors to user-friendly messages."""

    VALIDATION_CODES = {
        "CIRCULAR_DEPENDENCY": {
            "title": "Steps depend on each other in a loop",
            "explanation": "The depends_on graph contains a cycle, so no step in the loop can ever start.",
            "actions": [
                "Check the depends_on lists of the reported step and the steps it depends on",
                "Move shared work into a separate upstream step",
            ],
        },
        "SELF_DEPENDENCY": {
            "title": "A step depends on itself",
            "explanation": "A step lists its own id in depends_on.",
            "actions": ["Remove the step's own id from its depends_on list"],
        },
        "DEPENDENCY_NOT_FOUND": {
            "title": "Unknown dependency",
            "explanation": "A depends_on entry names a step that is not in this workflow.",
            "actions": ["Check the step id for typos", "Add the missing step"],
        },
        "TOOL_NOT_FOUND": {
            "title": "Tool not available",
            "explanation": "A step references a tool that is not registered.",
            "actions": ["Check the tool_name for typos", "Register the tool before running the workflow"],
        },
        "TOO_MANY_STEPS": {
            "title": "Workflow is too large",
            "explanation": "The workflow has more steps than the configured max_steps.",
            "actions": ["Split it into smaller workflows", "Raise max_steps in the composer config"],
        },
        "TOO_DEEP": {
            "title": "Dependency chain is too long",
            "explanation": "The workflow has more sequential levels than the configured max_depth.",
            "actions": ["Flatten independent steps so they share a level", "Raise max_depth in the composer config"],
        },
        "INVALID_ERROR_HANDLER": {
            "title": "Unknown on_error policy",
            "explanation": "on_error must be one of: abort, skip, retry, fallback.",
            "actions": ["Fix the on_error value of the reported step"],
        },
    }

    RUN_PATTERNS = {
        r"timeout exceeded": {
            "title": "Workflow timed out",
            "explanation": "The run passed its timeout_ms. Timeouts are checked between levels, so steps already started were allowed to finish.",
            "actions": ["Raise timeout_ms on the workflow", "Set a per-step timeout to catch slow tools earlier"],
        },
        r"was aborted": {
            "title": "Workflow aborted",
            "explanation": "The run was cancelled before all levels completed.",
            "actions": ["Check step_results for the steps that finished before the abort"],
        },
        r"token budget exceeded": {
            "title": "Token budget exhausted",
            "explanation": "Tools reported more token usage than the workflow's token_budget allows.",
            "actions": ["Raise token_budget", "Trim inputs passed to token-heavy tools"],
        },
        r"^step .+ failed": {
            "title": "A step failed",
            "explanation": "A step with on_error=abort failed and stopped the run.",
            "actions": [
                "Use on_error: retry for flaky tools",
                "Use on_error: skip or fallback for optional steps",
                "Pass --continue-on-error to keep going past failed steps",
            ],
        },
    }

    def translate_issue(self, issue: ValidationIssue) -> UserFriendlyError:
        """Convert a validation issue to user-friendly format."""
        translation = self.VALIDATION_CODES.get(issue.code)
        if translation is None:
            return UserFriendlyError(title=issue.code, explanation=issue.message)
        return UserFriendlyError(
            title=translation["title"],
            explanation=translation["explanation"],
            actions=translation["actions"],
            technical=issue.message,
        )

    def translate(self, error: Union[Exception, str]) -> UserFriendlyError:
        """Convert a run error (exception or result error string) to user-friendly format."""
        message = str(error)
        for pattern, translation in self.RUN_PATTERNS.items():
            if re.search(pattern, message, re.IGNORECASE):
                return UserFriendlyError(
                    title=translation["title"],
                    explanation=translation["explanation"],
                    actions=translation["actions"],
                    technical=message,
                )

        return UserFriendlyError(
            title="Unexpected error",
            explanation=message,
            actions=["Re-run with --log-level DEBUG and check the logs"],
        )

    def format_for_cli(self, friendly_error: UserFriendlyError) -> str:
        """Format error for rich console display."""
        output = f"[bold red]{friendly_error.title}[/]\n\n"
        output += f"{friendly_error.explanation}\n"

        if friendly_error.actions:
            output += "\n[bold]How to fix:[/]\n"
            for i, action in enumerate(friendly_error.actions, 1):
                output += f"  {i}. {action}\n"

        if friendly_error.technical:
            output += f"\n[dim]Technical details: {friendly_error.technical}[/]"

        return output
