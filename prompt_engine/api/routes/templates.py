"""Prompt template API routes.

Edits never overwrite: PUT stores a new version and keeps the previous one
reachable under /versions.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from prompt_engine.prompts.resolver import extract_variable_names, validate_template
from prompt_engine.prompts.schemas import PromptTemplate, PromptTemplateSummary, TemplateWrite
from prompt_engine.templates.registry import TemplateRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prompt-templates", tags=["prompt-templates"])

_registry: Optional[TemplateRegistry] = None


def init_registry(registry: TemplateRegistry) -> None:
    global _registry
    _registry = registry


def _get_registry() -> TemplateRegistry:
    if _registry is None:
        raise HTTPException(status_code=503, detail="Template registry not initialized")
    return _registry


def _get_template(template_id: str) -> PromptTemplate:
    template = _get_registry().get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
    return template


# ── List endpoints ───────────────────────────────────────


@router.get("", response_model=list[PromptTemplateSummary])
async def list_templates(
    app: Optional[str] = Query(None, description="Filter by app"),
    stage: Optional[str] = Query(None, description="Filter by stage"),
    feature: Optional[str] = Query(None, description="Filter by feature"),
    tag_group: Optional[str] = Query(None, description="Only members of this tag group"),
    search: Optional[str] = Query(None, description="Search name, body and notes"),
) -> list[PromptTemplateSummary]:
    """List templates with optional filtering."""
    reg = _get_registry()
    templates = reg.list_filtered(
        app=app, stage=stage, feature=feature, tag_group=tag_group, search=search
    )
    return [
        PromptTemplateSummary(
            id=t.id,
            name=t.name,
            app=t.app,
            stage=t.stage,
            feature=t.feature,
            tags=t.tags,
            model=t.model,
            version=t.version,
            variable_count=len(t.variable_defs),
            updated_at=t.updated_at,
        )
        for t in templates
    ]


# ── Detail endpoints ─────────────────────────────────────


@router.get("/{template_id}", response_model=PromptTemplate)
async def get_template(template_id: str) -> PromptTemplate:
    """Get the current version of a template."""
    return _get_template(template_id)


@router.get("/{template_id}/versions", response_model=list[PromptTemplate])
async def list_template_versions(template_id: str) -> list[PromptTemplate]:
    """All versions of a template, oldest first."""
    versions = _get_registry().history(template_id)
    if not versions:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
    return versions


@router.get("/{template_id}/versions/{version}", response_model=PromptTemplate)
async def get_template_version(template_id: str, version: int) -> PromptTemplate:
    """Get one specific version of a template."""
    template = _get_registry().get_version(template_id, version)
    if template is None:
        raise HTTPException(
            status_code=404,
            detail=f"Template version not found: {template_id} v{version}",
        )
    return template


@router.post("/{template_id}/validate")
async def validate_stored_template(template_id: str) -> dict:
    """Check placeholders against variable definitions without executing."""
    template = _get_template(template_id)
    issues = validate_template(template.template, template.variable_defs)
    return {
        "template_id": template.id,
        "version": template.version,
        "valid": not issues,
        "issues": issues,
        "placeholders": extract_variable_names(template.template),
    }


# ── Write endpoints ──────────────────────────────────────


@router.post("", response_model=PromptTemplate, status_code=201)
async def create_template(body: TemplateWrite) -> PromptTemplate:
    """Create a template at version 1."""
    issues = validate_template(body.template, body.variable_defs)
    if issues:
        logger.warning(f"Creating template '{body.name}' with issues: {issues}")
    return _get_registry().create(body)


@router.put("/{template_id}", response_model=PromptTemplate)
async def update_template(template_id: str, body: TemplateWrite) -> PromptTemplate:
    """Save an edit as a new version."""
    updated = _get_registry().update(template_id, body)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
    return updated


@router.delete("/{template_id}")
async def delete_template(template_id: str) -> dict:
    """Delete a template. Past versions stay available for existing records."""
    if not _get_registry().delete(template_id):
        raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
    return {"deleted": template_id}
