"""Load workflow definitions from YAML files or plain mappings."""

import logging
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from ..core.config import expand_env_vars
from ..errors import WorkflowDefinitionError
from .models import Workflow

logger = logging.getLogger(__name__)


def parse_workflow(data: Dict[str, Any]) -> Workflow:
    """Build a Workflow from a plain mapping (e.g. parsed YAML or JSON)."""
    if not isinstance(data, dict):
        raise WorkflowDefinitionError(f"Workflow definition must be a mapping, got {type(data).__name__}")
    try:
        return Workflow(**expand_env_vars(data))
    except ValidationError as e:
        raise WorkflowDefinitionError(f"Invalid workflow definition: {e}") from e


def load_workflow(workflow_path: Path) -> Workflow:
    """Load a workflow definition from a YAML file."""
    if not workflow_path.exists():
        raise WorkflowDefinitionError(f"Workflow file not found: {workflow_path}")

    with open(workflow_path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise WorkflowDefinitionError(f"Invalid YAML in {workflow_path}: {e}") from e

    workflow = parse_workflow(data)
    logger.debug(f"Loaded workflow '{workflow.id}' ({len(workflow.steps)} steps) from {workflow_path}")
    return workflow
