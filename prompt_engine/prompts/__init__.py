"""Prompt template schemas and variable resolution."""

from prompt_engine.prompts.resolver import (
    ResolvedPrompt,
    extract_variable_names,
    resolve,
    serialize_value,
    validate_template,
)
from prompt_engine.prompts.schemas import (
    PromptTemplate,
    PromptTemplateSummary,
    TemplateWrite,
    VariableContext,
    VariableDefinition,
    VariableType,
)

__all__ = [
    "PromptTemplate",
    "PromptTemplateSummary",
    "ResolvedPrompt",
    "TemplateWrite",
    "VariableContext",
    "VariableDefinition",
    "VariableType",
    "extract_variable_names",
    "resolve",
    "serialize_value",
    "validate_template",
]
