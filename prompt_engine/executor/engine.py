"""Prompt execution engine.

Orchestrates one execution attempt:
1. Resolve variables against the template's definitions
2. On success, run the resolved prompt through the provider router
3. Fold any failure into an ExecutionResult with status=error

execute() never raises. Callers always get a result they can persist,
whichever stage failed. Resolution failures short-circuit before any
provider call is made.
"""

import logging
import time
from typing import Optional, Sequence

from prompt_engine.errors import MissingRequiredVariable, ProviderError, TypeMismatch
from prompt_engine.llm.router import ProviderRouter
from prompt_engine.prompts.resolver import resolve, validate_template
from prompt_engine.prompts.schemas import VariableContext, VariableDefinition
from prompt_engine.executor.schemas import ErrorKind, ExecutionResult, ExecutionStatus

logger = logging.getLogger(__name__)


class ExecutionEngine:
    """Resolves templates and dispatches them to providers.

    Holds no per-request state; one instance can serve concurrent requests.
    """

    def __init__(self, router: ProviderRouter):
        self.router = router

    def execute(
        self,
        template_body: str,
        context: VariableContext,
        model: str,
    ) -> ExecutionResult:
        """Execute a template against input variables.

        Args:
            template_body: Template text with {{name}} placeholders
            context: Input values and the variable definitions they resolve against
            model: Model identifier to route to

        Returns:
            ExecutionResult; status=error carries error_kind and error_message
        """
        start_time = time.time()

        def _elapsed() -> int:
            return int((time.time() - start_time) * 1000)

        logger.info(
            f"[{model}] Starting execution: {len(template_body):,} template chars, "
            f"{len(context.variable_defs)} variable defs"
        )

        try:
            resolved = resolve(template_body, context.variable_defs, context.variables)
        except MissingRequiredVariable as e:
            logger.warning(f"[{model}] {e}")
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                model=model,
                error_kind=ErrorKind.MISSING_VARIABLES,
                error_message=str(e),
                missing_variables=e.missing,
                execution_time_ms=_elapsed(),
            )
        except TypeMismatch as e:
            logger.warning(f"[{model}] {e}")
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                model=model,
                error_kind=ErrorKind.TYPE_MISMATCH,
                error_message=str(e),
                invalid_variables=e.mismatches,
                execution_time_ms=_elapsed(),
            )
        except Exception as e:
            logger.exception(f"[{model}] Unexpected resolution failure")
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                model=model,
                error_kind=ErrorKind.INTERNAL,
                error_message=f"Unexpected resolution error: {e}",
                execution_time_ms=_elapsed(),
            )

        try:
            routed = self.router.execute(resolved.resolved_prompt, model)
        except ProviderError as e:
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                model=model,
                error_kind=ErrorKind.PROVIDER,
                error_message=e.message,
                resolved_prompt=resolved.resolved_prompt,
                provider_used=e.provider,
                execution_time_ms=_elapsed(),
            )
        except Exception as e:
            logger.exception(f"[{model}] Unexpected execution failure")
            return ExecutionResult(
                status=ExecutionStatus.ERROR,
                model=model,
                error_kind=ErrorKind.INTERNAL,
                error_message=f"Unexpected execution error: {e}",
                resolved_prompt=resolved.resolved_prompt,
                execution_time_ms=_elapsed(),
            )

        execution_time_ms = _elapsed()
        logger.info(
            f"[{model}] Execution completed via {routed.provider_used}: "
            f"{execution_time_ms}ms, {len(routed.output):,} output chars"
        )

        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            model=model,
            output=routed.output,
            resolved_prompt=resolved.resolved_prompt,
            execution_time_ms=execution_time_ms,
            provider_used=routed.provider_used,
            metrics=routed.metrics,
        )

    def validate_template(
        self, template_body: str, variable_defs: Sequence[VariableDefinition]
    ) -> list[str]:
        """Check a template without executing it."""
        return validate_template(template_body, variable_defs)

    def capability_of(self, model: str) -> Optional[str]:
        capability = self.router.capability_of(model)
        return capability.value if capability else None
