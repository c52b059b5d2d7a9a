"""Executor-side schemas for execution requests, results, records and group runs.

ExecutionResult is what the engine returns synchronously (success or error
only). ExecutionRecord is what gets persisted; it additionally admits the
transitional pending/running states.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from prompt_engine.prompts.schemas import VariableDefinition, utc_now


class ExecutionStatus(str, Enum):
    """Outcome of one synchronous execution."""

    SUCCESS = "success"
    ERROR = "error"


class RecordStatus(str, Enum):
    """Lifecycle of a persisted execution record."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Which stage of an execution failed."""

    MISSING_VARIABLES = "missing_variables"
    TYPE_MISMATCH = "type_mismatch"
    PROVIDER = "provider"
    INTERNAL = "internal"


class ExecutionResult(BaseModel):
    """Result of one resolve + provider attempt. Always produced, never raised."""

    status: ExecutionStatus
    model: str
    output: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    missing_variables: list[str] = Field(default_factory=list)
    invalid_variables: dict[str, str] = Field(default_factory=dict)
    resolved_prompt: Optional[str] = Field(
        default=None,
        description="Substituted prompt; None when resolution itself failed",
    )
    execution_time_ms: int = 0
    provider_used: Optional[str] = None
    metrics: Optional[dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS


class ExecutionRequest(BaseModel):
    """A caller's request to execute a stored or inline template.

    Shape rules (app/stage present, exactly one template source) are checked
    by the execution service so that library and HTTP callers get the same
    ValidationError.
    """

    template_id: Optional[str] = None
    inline_template: Optional[str] = None
    variable_defs: Optional[list[VariableDefinition]] = Field(
        default=None,
        description="Required with inline_template; ignored for stored templates",
    )
    inputs: dict[str, Any] = Field(default_factory=dict)
    model: Optional[str] = Field(default=None, description="Overrides the template's model")
    app: Optional[str] = None
    stage: Optional[str] = None
    feature: Optional[str] = None
    project_id: Optional[str] = None


class TemplateSnapshot(BaseModel):
    """The template body and definitions exactly as executed."""

    template: str
    variable_defs: list[VariableDefinition] = Field(default_factory=list)


class ExecutionRecord(BaseModel):
    """Durable audit record of one execution attempt."""

    id: str
    template_id: Optional[str] = None
    template_version: Optional[int] = None
    template_snapshot: Optional[TemplateSnapshot] = None
    app: str
    stage: str
    feature: Optional[str] = None
    project_id: Optional[str] = None
    tags_snapshot: list[str] = Field(
        default_factory=list,
        description="Template tags copied at execution time",
    )
    inputs: dict[str, Any] = Field(default_factory=dict)
    resolved_prompt: str = Field(
        ...,
        description="Resolved prompt, or the unresolved body when resolution failed",
    )
    model: str
    status: RecordStatus
    output_raw: Optional[str] = None
    error_message: Optional[str] = None
    provider_used: Optional[str] = None
    execution_time_ms: int = 0
    started_at: datetime
    finished_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    notes: Optional[str] = None


class ExecutionOutcome(BaseModel):
    """A persisted record together with the engine result it was built from."""

    record: ExecutionRecord
    result: ExecutionResult


class ExecutionFilters(BaseModel):
    """Filters for the execution audit listing."""

    app: Optional[str] = None
    stage: Optional[str] = None
    feature: Optional[str] = None
    project_id: Optional[str] = None
    template_id: Optional[str] = None
    status: Optional[RecordStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = Field(
        default=None,
        description="Substring match over resolved prompt, notes and error message",
    )


class Pagination(BaseModel):
    page: int
    limit: int
    total_pages: int
    total_docs: int
    has_next_page: bool
    has_prev_page: bool


class ExecutionPage(BaseModel):
    """One page of execution records, newest first."""

    executions: list[ExecutionRecord]
    pagination: Pagination


# ── Tag-group runs ───────────────────────────────────────


class StepStatus(str, Enum):
    """Status of one step in a tag-group run."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class GroupRunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepConfig(BaseModel):
    """Per-step configuration for a tag-group run."""

    template_id: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    handoff_variable: Optional[str] = Field(
        default=None,
        description="Variable of this step's template bound to the previous step's output",
    )


class GroupRunConfig(BaseModel):
    """Configuration for running a tag group as a sequential workflow."""

    app: str = Field(..., min_length=1)
    stage: str = Field(..., min_length=1)
    feature: Optional[str] = None
    project_id: Optional[str] = None
    model: Optional[str] = Field(default=None, description="Model override for every step")
    shared_inputs: dict[str, Any] = Field(
        default_factory=dict,
        description="Inputs offered to every step; step inputs take precedence",
    )
    steps: list[StepConfig] = Field(
        default_factory=list,
        description="Per-template overrides; templates without an entry use defaults",
    )
    default_handoff_variable: Optional[str] = Field(
        default=None,
        description="Handoff variable for steps that do not declare their own",
    )
    stop_on_error: bool = Field(
        default=True,
        description="Skip remaining steps after a failure",
    )
    max_attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Attempts per step; each attempt is recorded separately",
    )


class StepResult(BaseModel):
    """Outcome of one step of a tag-group run."""

    order: int
    template_id: str
    template_name: str
    status: StepStatus
    attempts: int = 0
    inputs: dict[str, Any] = Field(default_factory=dict)
    record_ids: list[str] = Field(default_factory=list)
    output: Optional[str] = None
    error_message: Optional[str] = None
    execution_time_ms: int = 0


class GroupRunSummary(BaseModel):
    total: int
    completed: int
    skipped: int
    failed: int
    success_rate: float
    total_execution_time_ms: int
    summary: str


class GroupRunResult(BaseModel):
    """Result of running every step of a tag group."""

    group_name: str
    status: GroupRunStatus
    steps: list[StepResult]
    summary: GroupRunSummary
    started_at: datetime
    finished_at: datetime
