"""Shared utility functions for the tool composer."""

from .rich_logging import ContextLogger, WorkflowLogFormatter, setup_rich_logging

__all__ = [
    "ContextLogger",
    "WorkflowLogFormatter",
    "setup_rich_logging",
]
