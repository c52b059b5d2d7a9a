"""Execution API routes.

POST /v1/prompts/execute runs one template (stored or inline) and records
the attempt. Recorded failures still return the record, with a status code
telling resolution failures (422) from provider failures (502). A record
that could not be saved is a 500 whose body says so.

GET /v1/prompts lists the execution audit trail, newest first.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from prompt_engine.errors import PersistenceError, TemplateNotFoundError, ValidationError
from prompt_engine.executor.execution_store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from prompt_engine.executor.schemas import (
    ErrorKind,
    ExecutionFilters,
    ExecutionPage,
    ExecutionRecord,
    ExecutionRequest,
    RecordStatus,
)
from prompt_engine.executor.service import PromptExecutionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prompts", tags=["executions"])

_service: Optional[PromptExecutionService] = None

# Recorded-but-failed executions, by the stage that failed
_FAILURE_STATUS = {
    ErrorKind.MISSING_VARIABLES: 422,
    ErrorKind.TYPE_MISMATCH: 422,
    ErrorKind.PROVIDER: 502,
    ErrorKind.INTERNAL: 502,
}


def init_service(service: PromptExecutionService) -> None:
    global _service
    _service = service


def _get_service() -> PromptExecutionService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Execution service not initialized")
    return _service


def validation_response(e: ValidationError) -> JSONResponse:
    """400 for malformed requests, 404 when the template does not exist."""
    status_code = 404 if isinstance(e, TemplateNotFoundError) else 400
    return JSONResponse(
        status_code=status_code,
        content={"detail": e.message, "fields": e.fields},
    )


def persistence_response(e: PersistenceError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "detail": e.message,
            "recorded": False,
            "result": e.result.model_dump(mode="json") if e.result is not None else None,
        },
    )


@router.post("/execute")
def execute_prompt(request: ExecutionRequest):
    """Execute a template and record the attempt."""
    service = _get_service()

    try:
        outcome = service.execute(request)
    except ValidationError as e:
        return validation_response(e)
    except PersistenceError as e:
        return persistence_response(e)

    result = outcome.result
    status_code = 200 if result.succeeded else _FAILURE_STATUS[result.error_kind]
    body = outcome.model_dump(mode="json")
    body["recorded"] = True
    return JSONResponse(status_code=status_code, content=body)


@router.get("", response_model=ExecutionPage)
def list_executions(
    app: Optional[str] = Query(None, description="Filter by app"),
    stage: Optional[str] = Query(None, description="Filter by stage"),
    feature: Optional[str] = Query(None, description="Filter by feature"),
    project_id: Optional[str] = Query(None, description="Filter by project"),
    template_id: Optional[str] = Query(None, description="Filter by template"),
    status: Optional[RecordStatus] = Query(None, description="Filter by record status"),
    date_from: Optional[datetime] = Query(None, description="Created at or after"),
    date_to: Optional[datetime] = Query(None, description="Created at or before"),
    search: Optional[str] = Query(None, description="Search prompt, notes and errors"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> ExecutionPage:
    """List execution records, newest first."""
    filters = ExecutionFilters(
        app=app,
        stage=stage,
        feature=feature,
        project_id=project_id,
        template_id=template_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    return _get_service().store.list(filters, page=page, limit=limit)


@router.get("/{execution_id}", response_model=ExecutionRecord)
def get_execution(execution_id: str) -> ExecutionRecord:
    """Get a single execution record."""
    record = _get_service().store.get(execution_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return record
