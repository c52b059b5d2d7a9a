"""Execution request handling.

Sits between callers (HTTP routes, the tag-group runner) and the engine:

1. Validate the request shape (nothing is executed or recorded on failure)
2. Load the stored template, or take the inline one
3. Pick the model: request override, then template model, then the default
4. Run the engine, then persist exactly one execution record

The record is written before execute() returns, so a caller that sees a
result can always find its record.
"""

import logging
from typing import Optional, Protocol

from prompt_engine.errors import PersistenceError, TemplateNotFoundError, ValidationError
from prompt_engine.executor.engine import ExecutionEngine
from prompt_engine.executor.execution_store import ExecutionStore, new_execution_id
from prompt_engine.executor.schemas import (
    ExecutionOutcome,
    ExecutionRecord,
    ExecutionRequest,
    ExecutionResult,
    RecordStatus,
    TemplateSnapshot,
)
from prompt_engine.prompts.schemas import (
    PromptTemplate,
    VariableContext,
    VariableDefinition,
    utc_now,
)

logger = logging.getLogger(__name__)


class TemplateCatalog(Protocol):
    """Read access to stored templates."""

    def get(self, template_id: str) -> Optional[PromptTemplate]:
        ...


def validate_request(request: ExecutionRequest) -> None:
    """Check the request shape.

    Raises:
        ValidationError: Listing every offending field
    """
    problems: list[str] = []
    fields: list[str] = []

    if not (request.app or "").strip():
        problems.append("app is required")
        fields.append("app")
    if not (request.stage or "").strip():
        problems.append("stage is required")
        fields.append("stage")

    has_stored = bool(request.template_id)
    has_inline = bool(request.inline_template)
    if has_stored == has_inline:
        problems.append("exactly one of template_id or inline_template is required")
        fields.extend(["template_id", "inline_template"])
    elif has_inline and request.variable_defs is None:
        problems.append("variable_defs is required with inline_template")
        fields.append("variable_defs")

    if problems:
        raise ValidationError("Invalid execution request: " + "; ".join(problems), fields)


def build_execution_record(
    request: ExecutionRequest,
    template_body: str,
    variable_defs: list[VariableDefinition],
    result: ExecutionResult,
    *,
    template: Optional[PromptTemplate] = None,
    started_at=None,
) -> ExecutionRecord:
    """Shape the durable record for one execution attempt.

    When resolution failed, resolved_prompt holds the unresolved template
    body so the record still shows what was attempted.
    """
    finished_at = utc_now()
    return ExecutionRecord(
        id=new_execution_id(),
        template_id=template.id if template else None,
        template_version=template.version if template else None,
        template_snapshot=TemplateSnapshot(
            template=template_body, variable_defs=list(variable_defs)
        ),
        app=request.app,
        stage=request.stage,
        feature=request.feature,
        project_id=request.project_id,
        tags_snapshot=list(template.tags) if template else [],
        inputs=dict(request.inputs),
        resolved_prompt=(
            result.resolved_prompt if result.resolved_prompt is not None else template_body
        ),
        model=result.model,
        status=RecordStatus.SUCCESS if result.succeeded else RecordStatus.ERROR,
        output_raw=result.output,
        error_message=result.error_message,
        provider_used=result.provider_used,
        execution_time_ms=result.execution_time_ms,
        started_at=started_at or finished_at,
        finished_at=finished_at,
        created_at=finished_at,
        updated_at=finished_at,
    )


class PromptExecutionService:
    """Validates, executes and records prompt executions."""

    def __init__(
        self,
        catalog: TemplateCatalog,
        engine: ExecutionEngine,
        store: ExecutionStore,
        default_model: str,
    ):
        self.catalog = catalog
        self.engine = engine
        self.store = store
        self.default_model = default_model

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Execute one request and persist its record.

        Raises:
            ValidationError: Malformed request (nothing recorded)
            TemplateNotFoundError: Unknown template_id (nothing recorded)
            PersistenceError: The record could not be written
        """
        validate_request(request)

        template: Optional[PromptTemplate] = None
        if request.template_id:
            template = self.catalog.get(request.template_id)
            if template is None:
                raise TemplateNotFoundError(request.template_id)
            template_body = template.template
            variable_defs = list(template.variable_defs)
        else:
            template_body = request.inline_template
            variable_defs = list(request.variable_defs or [])

        model = request.model or (template.model if template else None) or self.default_model
        label = template.id if template else "inline"
        logger.info(f"[{label}] Executing for {request.app}/{request.stage} with {model}")

        started_at = utc_now()
        result = self.engine.execute(
            template_body,
            VariableContext(variables=request.inputs, variable_defs=variable_defs),
            model,
        )

        record = build_execution_record(
            request,
            template_body,
            variable_defs,
            result,
            template=template,
            started_at=started_at,
        )

        try:
            stored = self.store.create(record)
        except Exception as e:
            logger.exception(f"[{label}] Failed to persist execution record {record.id}")
            raise PersistenceError(
                f"Execution finished with status '{result.status.value}' "
                f"but its record was not saved: {e}",
                result=result,
            ) from e

        return ExecutionOutcome(record=stored, result=result)
