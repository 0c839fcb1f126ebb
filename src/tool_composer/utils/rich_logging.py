"""Rich logging with workflow/step context and better formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "tool_composer"


class WorkflowLogFormatter(logging.Formatter):
    """Custom formatter with workflow context."""

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        workflow_context = ""
        if hasattr(record, "workflow_id"):
            workflow_context = f"[{record.workflow_id}] "

        step_context = ""
        if hasattr(record, "step_id"):
            step_context = f"[{record.step_id}] "

        if self.use_colors:
            level_colors = {
                "DEBUG": "\033[36m",      # Cyan
                "INFO": "\033[32m",       # Green
                "WARNING": "\033[33m",    # Yellow
                "ERROR": "\033[31m",      # Red
                "CRITICAL": "\033[35m",   # Magenta
            }
            reset = "\033[0m"
            level_color = level_colors.get(record.levelname, "")
        else:
            level_color = ""
            reset = ""

        return (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{workflow_context}{step_context}{record.getMessage()}"
        )


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with the workflow run context."""

    def __init__(self, logger: logging.Logger, workflow_id: str):
        super().__init__(logger, {})
        self.workflow_id = workflow_id

    def process(self, msg, kwargs):
        """Add context to log record."""
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("workflow_id", self.workflow_id)
        kwargs["extra"] = extra
        return msg, kwargs

    def run_started(self, name: str, total_steps: int, levels: int):
        self.info(f"▶️ Starting workflow '{name}': {total_steps} steps in {levels} levels")

    def level_started(self, index: int, step_ids):
        self.debug(f"Level {index}: {', '.join(step_ids)}")

    def run_completed(self, duration_ms: int, steps_executed: int, tokens_used: int = 0):
        msg = f"✅ Workflow completed in {duration_ms}ms ({steps_executed} steps)"
        if tokens_used:
            msg += f" ({tokens_used:,} tokens)"
        self.info(msg)

    def run_failed(self, error: str, steps_executed: int):
        self.error(f"❌ Workflow failed after {steps_executed} steps: {error}")


def setup_rich_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    use_json: bool = False,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Also write plain-text logs to this file
        use_json: Use JSON structured logging on the console

    Returns:
        The configured ``tool_composer`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if use_json:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","workflow":"%(workflow_id)s","level":"%(levelname)s",'
            '"message":"%(message)s","module":"%(module)s"}',
            defaults={"workflow_id": ""},
        )
    else:
        formatter = WorkflowLogFormatter(use_colors=sys.stderr.isatty())

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(WorkflowLogFormatter(use_colors=False))
        logger.addHandler(file_handler)

    return logger
