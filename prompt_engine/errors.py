"""Error taxonomy for prompt execution.

- ValidationError: malformed execution request, nothing is executed or recorded
- ResolutionError: template variables could not be resolved (recorded)
- ProviderError: the model provider call failed (recorded)
- PersistenceError: the execution record itself could not be saved
"""

from typing import Any, Optional


class PromptEngineError(Exception):
    """Base class for all prompt engine errors."""


class ValidationError(PromptEngineError):
    """The execution request is malformed or incomplete."""

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or []


class TemplateNotFoundError(ValidationError):
    """The referenced template does not exist in the catalog."""

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}", fields=["template_id"])
        self.template_id = template_id


class ResolutionError(PromptEngineError):
    """Base class for variable resolution failures."""


class MissingRequiredVariable(ResolutionError):
    """One or more required variables have no input value.

    Always reports the complete set of missing names, in definition order.
    """

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        names = ", ".join(f"'{name}'" for name in self.missing)
        super().__init__(f"Missing required variables: {names}")


class TypeMismatch(ResolutionError):
    """One or more input values do not match their declared type."""

    def __init__(self, mismatches: dict[str, str]):
        self.mismatches = dict(mismatches)
        details = "; ".join(f"'{name}': {reason}" for name, reason in self.mismatches.items())
        super().__init__(f"Invalid variable values: {details}")


class ProviderError(PromptEngineError):
    """A provider adapter failed to produce output (timeout, HTTP error, bad payload)."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class PersistenceError(PromptEngineError):
    """The execution record could not be written.

    Carries the execution result so callers can still report what happened,
    distinctly from a normal execution failure.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.message = message
        self.result = result
