"""Variable resolution for prompt templates.

Substitutes typed input values into {{variableName}} placeholders.

Resolution is a pure function of (template, definitions, inputs):
- Every missing required variable is reported in one MissingRequiredVariable
- Every badly typed value is reported in one TypeMismatch
- Only defined variables are substituted; stray input keys are ignored
- Values are serialised deterministically so identical inputs give
  byte-identical prompts
"""

import json
import logging
import math
import re
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from prompt_engine.errors import MissingRequiredVariable, TypeMismatch
from prompt_engine.prompts.schemas import VariableDefinition, VariableType

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")
URL_PREFIXES = ("http://", "https://", "data:")

_STRING_TYPES = (VariableType.STRING, VariableType.TEXT, VariableType.URL)


class ResolvedPrompt(BaseModel):
    """Outcome of a successful resolution."""

    resolved_prompt: str
    used_variables: list[str] = Field(
        default_factory=list,
        description="Defined variables whose placeholder appears in the template",
    )
    unresolved_placeholders: list[str] = Field(
        default_factory=list,
        description="Placeholders left in the text because no definition names them",
    )


# ── Serialisation ────────────────────────────────────────


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _parse_number(text: str) -> Optional[float | int]:
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _format_number(number: float | int) -> str:
    if isinstance(number, int):
        return str(number)
    if number.is_integer():
        return str(int(number))
    # Decimal keeps the shortest round-trip digits but never uses exponent notation
    return format(Decimal(repr(number)), "f")


def serialize_value(value: Any, var_type: VariableType) -> str:
    """Render a value as prompt text according to its declared type."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _format_number(value)
    if isinstance(value, str):
        if var_type == VariableType.NUMBER:
            parsed = _parse_number(value)
            if parsed is not None:
                return _format_number(parsed)
        return value
    if isinstance(value, (list, tuple, dict)):
        return _compact_json(list(value) if isinstance(value, tuple) else value)
    return str(value)


# ── Type checking ────────────────────────────────────────


def _is_json_serializable(value: Any) -> bool:
    # Same encoder settings as rendering, so mixed key types are caught here
    try:
        json.dumps(value, allow_nan=False, sort_keys=True)
    except (TypeError, ValueError):
        return False
    return True


def check_value(definition: VariableDefinition, value: Any) -> Optional[str]:
    """Return why a value does not fit its definition, or None when it does."""
    if value is None:
        return None

    var_type = definition.type
    if var_type in _STRING_TYPES:
        if not isinstance(value, str):
            return f"expected {var_type.value}, got {type(value).__name__}"
        if var_type == VariableType.URL and not value.startswith(URL_PREFIXES):
            logger.warning(f"URL variable '{definition.name}' may be invalid: {value[:80]}")
    elif var_type == VariableType.NUMBER:
        if isinstance(value, bool):
            return "expected number, got bool"
        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                return "expected a finite number"
        elif isinstance(value, str):
            if _parse_number(value) is None:
                return f"expected number, got non-numeric string {value!r}"
        else:
            return f"expected number, got {type(value).__name__}"
    elif var_type == VariableType.BOOLEAN:
        if not isinstance(value, bool):
            return f"expected boolean, got {type(value).__name__}"
    elif var_type == VariableType.ARRAY:
        if not isinstance(value, (list, tuple)):
            return f"expected array, got {type(value).__name__}"
        if not _is_json_serializable(list(value)):
            return "array contains values that cannot be serialised as JSON"
    elif var_type == VariableType.OBJECT:
        if not isinstance(value, dict):
            return f"expected object, got {type(value).__name__}"
        if not _is_json_serializable(value):
            return "object contains values that cannot be serialised as JSON"
    elif var_type == VariableType.JSON:
        if not _is_json_serializable(value):
            return "value cannot be serialised as JSON"

    if definition.options and serialize_value(value, var_type) not in definition.options:
        return f"must be one of {definition.options}"

    return None


# ── Resolution ───────────────────────────────────────────


def _index_definitions(variable_defs: Sequence[VariableDefinition]) -> dict[str, VariableDefinition]:
    # First definition of a name wins; validate_template reports duplicates
    indexed: dict[str, VariableDefinition] = {}
    for definition in variable_defs:
        indexed.setdefault(definition.name, definition)
    return indexed


def resolve(
    template: str,
    variable_defs: Sequence[VariableDefinition],
    inputs: Mapping[str, Any],
) -> ResolvedPrompt:
    """Substitute input values into a template.

    Args:
        template: Template body with {{name}} placeholders
        variable_defs: Definitions of the template's variables
        inputs: Input values keyed by variable name

    Returns:
        ResolvedPrompt with the substituted text

    Raises:
        MissingRequiredVariable: If any required variable has no input key
        TypeMismatch: If any supplied value does not fit its definition
    """
    definitions = _index_definitions(variable_defs)

    missing = [name for name, d in definitions.items() if d.required and name not in inputs]
    if missing:
        raise MissingRequiredVariable(missing)

    mismatches: dict[str, str] = {}
    for name, definition in definitions.items():
        if name in inputs:
            reason = check_value(definition, inputs[name])
            if reason:
                mismatches[name] = reason
    if mismatches:
        raise TypeMismatch(mismatches)

    used: list[str] = []
    unresolved: list[str] = []

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        definition = definitions.get(name)
        if definition is None:
            if name not in unresolved:
                unresolved.append(name)
            return match.group(0)
        if name not in used:
            used.append(name)
        value = inputs.get(name)
        if value is None:
            value = definition.default_value
        return serialize_value(value, definition.type)

    resolved_prompt = PLACEHOLDER_PATTERN.sub(_substitute, template)

    if unresolved:
        logger.warning(f"Placeholders without a definition left unresolved: {unresolved}")
    logger.debug(
        f"Resolved {len(used)} variables into {len(resolved_prompt):,} chars"
    )

    return ResolvedPrompt(
        resolved_prompt=resolved_prompt,
        used_variables=used,
        unresolved_placeholders=unresolved,
    )


def extract_variable_names(template: str) -> list[str]:
    """List placeholder names in order of first appearance."""
    names: list[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def validate_template(template: str, variable_defs: Sequence[VariableDefinition]) -> list[str]:
    """Check a template against its definitions without executing it.

    Returns a list of human-readable problems (empty when the template is clean).
    """
    errors: list[str] = []
    seen: set[str] = set()
    for definition in variable_defs:
        if definition.name in seen:
            errors.append(f"Variable '{definition.name}' is defined more than once")
        seen.add(definition.name)

    placeholders = extract_variable_names(template)
    for name in placeholders:
        if name not in seen:
            errors.append(f"Variable '{name}' used in template but not defined")
    for name in _index_definitions(variable_defs):
        if name not in placeholders:
            errors.append(f"Variable '{name}' is defined but never used in template")

    return errors
