"""Prompt template and variable definition schemas.

A template is a prompt body with {{variableName}} placeholders plus the
typed definitions of those variables.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VariableType(str, Enum):
    """Declared type of a template variable."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    JSON = "json"
    TEXT = "text"  # Long-form string, rendered as a textarea
    URL = "url"


class VariableDefinition(BaseModel):
    """A typed input variable of a prompt template."""

    name: str = Field(
        ...,
        min_length=1,
        description="Placeholder name, unique within a template",
        examples=["genre", "characterName"],
    )
    type: VariableType = Field(default=VariableType.STRING)
    required: bool = Field(
        default=True,
        description="Whether an input value must be supplied at execution time",
    )
    description: Optional[str] = None
    default_value: Any = Field(
        default=None,
        description="Value used when an optional variable has no input",
    )
    options: Optional[list[str]] = Field(
        default=None,
        description="Enumerated choices; inputs must be one of these when set",
        examples=[["drama", "comedy", "thriller"]],
    )


class VariableContext(BaseModel):
    """Input values plus the definitions they are resolved against."""

    variables: dict[str, Any] = Field(default_factory=dict)
    variable_defs: list[VariableDefinition] = Field(default_factory=list)


class PromptTemplate(BaseModel):
    """A parameterised prompt template.

    Templates are versioned values: an edit produces a new version rather than
    overwriting, so execution records that snapshot a version stay meaningful.
    """

    id: str = Field(..., min_length=1, examples=["tpl-main-reference-001"])
    name: str = Field(..., min_length=1, examples=["Main Reference Sheet"])
    app: str = Field(..., examples=["auto-movie", "story-service"])
    stage: str = Field(..., examples=["concept", "development", "production"])
    feature: Optional[str] = None
    tags: list[str] = Field(
        default_factory=list,
        description="Free-form tags; '<prefix>-<NNN>' tags form ordered tag groups",
        examples=[["mainReference-001", "characters"]],
    )
    model: str = Field(
        ...,
        description="Default model identifier for this template",
        examples=["anthropic/claude-sonnet-4", "fal-ai/nano-banana"],
    )
    template: str = Field(..., description="Body with {{variableName}} placeholders")
    variable_defs: list[VariableDefinition] = Field(default_factory=list)
    output_schema: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for tag in tags:
            tag = tag.strip()
            if tag:
                seen.setdefault(tag, None)
        return list(seen)


class PromptTemplateSummary(BaseModel):
    """Lightweight template info for listing endpoints."""

    id: str
    name: str
    app: str
    stage: str
    feature: Optional[str] = None
    tags: list[str]
    model: str
    version: int
    variable_count: int
    updated_at: datetime


class TemplateWrite(BaseModel):
    """Body for creating or editing a template (id and versioning are server-side)."""

    name: str = Field(..., min_length=1)
    app: str = Field(..., min_length=1)
    stage: str = Field(..., min_length=1)
    feature: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    model: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)
    variable_defs: list[VariableDefinition] = Field(default_factory=list)
    output_schema: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
