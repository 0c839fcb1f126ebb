"""Workflow definition models and runtime records."""

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Binding source that always resolves to the workflow input
INPUT_SOURCE = "input"


class ErrorPolicy(str, Enum):
    """What a step does once its attempts are exhausted."""
    ABORT = "abort"
    SKIP = "skip"
    RETRY = "retry"
    FALLBACK = "fallback"


class TransformType(str, Enum):
    """Transformations applicable to a bound value."""
    IDENTITY = "identity"
    JSON_PARSE = "json_parse"
    JSON_STRINGIFY = "json_stringify"
    SPLIT = "split"
    JOIN = "join"
    MAP = "map"
    FILTER = "filter"
    FLATTEN = "flatten"
    FIRST = "first"
    LAST = "last"
    COUNT = "count"
    EXTRACT_PROPERTY = "extract_property"


VALID_ERROR_POLICIES = frozenset(p.value for p in ErrorPolicy)
VALID_TRANSFORMS = frozenset(t.value for t in TransformType)


class DataBinding(BaseModel):
    """Maps a path inside a step output (or the workflow input) to a tool argument."""
    model_config = ConfigDict(frozen=True)

    source: str  # "input" or a step id / output name
    source_path: str = ""
    target: str
    # Kept as a plain string so unknown kinds surface as validation warnings
    transform: Optional[str] = None
    # Only used by map / filter / extract_property
    transform_config: Optional[Dict[str, Any]] = None


class WorkflowStep(BaseModel):
    """One tool invocation node in a workflow."""
    model_config = ConfigDict(frozen=True)

    id: str
    tool_name: str
    depends_on: List[str] = Field(default_factory=list)
    bindings: List[DataBinding] = Field(default_factory=list)
    static_args: Dict[str, Any] = Field(default_factory=dict)
    condition: Optional[str] = None
    on_error: str = ErrorPolicy.ABORT.value
    retry_count: Optional[int] = None
    fallback_value: Any = None
    output_as: Optional[str] = None

    @property
    def has_fallback_value(self) -> bool:
        """True when fallback_value was declared, even as null."""
        return "fallback_value" in self.model_fields_set

    @property
    def output_key(self) -> str:
        return self.output_as or self.id


class Workflow(BaseModel):
    """A declarative DAG of tool steps with input/output wiring."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    steps: List[WorkflowStep] = Field(default_factory=list)
    output_extraction: Optional[List[DataBinding]] = None
    timeout_ms: Optional[int] = None
    token_budget: Optional[int] = None
    created_by: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass
class ValidationIssue:
    """A single validation error or warning."""
    code: str
    message: str
    step_id: Optional[str] = None
    field: Optional[str] = None


@dataclass
class WorkflowValidationResult:
    """Outcome of validating a workflow definition."""
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    execution_order: Optional[List[List[str]]] = None


@dataclass
class ExecutionContext:
    """Per-run mutable state. Owned by a single composer invocation."""
    workflow_id: str
    input: Dict[str, Any]
    variables: Dict[str, Any] = field(default_factory=dict)
    step_outputs: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    tokens_used: int = 0
    current_step: Optional[str] = None

    def __post_init__(self):
        self.variables.setdefault(INPUT_SOURCE, self.input)


@dataclass
class StepExecutionResult:
    """Result of executing one step."""
    step_id: str
    success: bool
    output: Any = None
    error: Optional[str] = None
    duration_ms: int = 0
    skipped: bool = False
    skip_reason: Optional[str] = None
    attempts: int = 0


@dataclass
class WorkflowProgress:
    """Progress event pushed at each level boundary."""
    workflow_id: str
    total_steps: int
    completed_steps: int
    percentage: int
    elapsed_ms: int
    current_step: Optional[str] = None
    estimated_remaining_ms: Optional[int] = None


@dataclass
class WorkflowExecutionResult:
    """Result returned by ToolComposer.execute (never raised)."""
    workflow_id: str
    success: bool
    step_results: List[StepExecutionResult] = field(default_factory=list)
    total_duration_ms: int = 0
    tokens_used: int = 0
    output: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


ProgressCallback = Callable[[WorkflowProgress], None]


@dataclass
class ExecutionOptions:
    """Caller-supplied options for a single run."""
    session_id: str = ""
    run_id: Optional[str] = None
    agent_id: Optional[str] = None
    timeout_ms: Optional[int] = None
    token_budget: Optional[int] = None
    continue_on_error: bool = False
    max_parallel: Optional[int] = None  # Falls back to config.default_max_parallel
    tool_context: Any = None  # Required at step execution time
    on_progress: Optional[ProgressCallback] = None
    step_timeout_ms: Optional[int] = None  # Per-invocation deadline, off by default
