"""Tag-group API routes.

Groups are derived from template tags on every request; nothing is stored.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from prompt_engine.api.routes.executions import persistence_response, validation_response
from prompt_engine.errors import PersistenceError, ValidationError
from prompt_engine.executor.group_runner import run_tag_group
from prompt_engine.executor.schemas import GroupRunConfig, GroupRunResult
from prompt_engine.executor.service import PromptExecutionService
from prompt_engine.prompts.schemas import PromptTemplate
from prompt_engine.tag_groups.extractor import (
    TagGroup,
    extract_groups,
    get_group,
    get_group_templates,
)
from prompt_engine.templates.registry import TemplateRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tag-groups"])

_registry: Optional[TemplateRegistry] = None
_service: Optional[PromptExecutionService] = None


def init_tag_groups(registry: TemplateRegistry, service: PromptExecutionService) -> None:
    global _registry, _service
    _registry = registry
    _service = service


def _get_registry() -> TemplateRegistry:
    if _registry is None:
        raise HTTPException(status_code=503, detail="Template registry not initialized")
    return _registry


def _get_service() -> PromptExecutionService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Execution service not initialized")
    return _service


@router.get("/tag-groups", response_model=list[TagGroup])
async def list_tag_groups(
    app: Optional[str] = Query(None, description="Only templates of this app"),
    stage: Optional[str] = Query(None, description="Only templates of this stage"),
) -> list[TagGroup]:
    """List tag groups with two or more templates, sorted by name."""
    templates = _get_registry().list_filtered(app=app, stage=stage)
    return extract_groups(templates)


@router.get("/tags/{group}/templates", response_model=list[PromptTemplate])
async def list_group_templates(group: str) -> list[PromptTemplate]:
    """Templates of one tag group in workflow order."""
    templates = get_group_templates(_get_registry().list_all(), group)
    if not templates:
        raise HTTPException(status_code=404, detail=f"Tag group not found: {group}")
    return templates


@router.post("/tag-groups/{group}/run", response_model=GroupRunResult)
def run_group(group: str, config: GroupRunConfig):
    """Run every template of a tag group in order, feeding outputs forward."""
    templates = _get_registry().list_all()
    if get_group(templates, group) is None:
        raise HTTPException(status_code=404, detail=f"Tag group not found: {group}")

    try:
        return run_tag_group(group, templates, config, _get_service())
    except ValidationError as e:
        return validation_response(e)
    except PersistenceError as e:
        return persistence_response(e)
