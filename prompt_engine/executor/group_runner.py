"""Sequential tag-group execution.

A tag group is a sequence of templates that run one after another, each
step receiving the previous step's output under a declared variable name.
The group runner:

1. Orders the group's templates by tag number
2. Validates every step's hand-off variable against its template's
   variable definitions before anything runs
3. For each step:
   a. Merges shared inputs, step inputs and the previous step's output
   b. Executes through the execution service (one record per attempt)
   c. Retries provider failures up to max_attempts
4. Summarises the run

Steps never overlap: a step's record is written before the next step starts.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from prompt_engine.errors import ValidationError
from prompt_engine.executor.schemas import (
    ErrorKind,
    ExecutionRequest,
    GroupRunConfig,
    GroupRunResult,
    GroupRunStatus,
    GroupRunSummary,
    StepConfig,
    StepResult,
    StepStatus,
)
from prompt_engine.executor.service import PromptExecutionService
from prompt_engine.prompts.schemas import PromptTemplate, utc_now
from prompt_engine.tag_groups.extractor import get_group, parse_tag

logger = logging.getLogger(__name__)

# Resolution failures are deterministic; only these are worth another attempt
RETRYABLE_KINDS = {ErrorKind.PROVIDER, ErrorKind.INTERNAL}


def _step_order(template: PromptTemplate, group_name: str, fallback: int) -> int:
    for tag in template.tags:
        parsed = parse_tag(tag)
        if parsed and parsed.prefix == group_name:
            return parsed.order
    return fallback


def _plan_steps(
    group_name: str,
    members: list[PromptTemplate],
    config: GroupRunConfig,
) -> list[tuple[PromptTemplate, StepConfig, Optional[str]]]:
    """Pair each member with its step config and resolved hand-off variable.

    Raises:
        ValidationError: Unknown step template or undeclared hand-off variable
    """
    member_ids = {template.id for template in members}
    step_configs: dict[str, StepConfig] = {}
    for step in config.steps:
        if step.template_id not in member_ids:
            raise ValidationError(
                f"Step template '{step.template_id}' is not part of tag group '{group_name}'",
                fields=["steps"],
            )
        step_configs[step.template_id] = step

    plan = []
    problems: list[str] = []
    for index, template in enumerate(members):
        step = step_configs.get(template.id) or StepConfig(template_id=template.id)
        handoff = step.handoff_variable
        if handoff is None and index > 0:
            handoff = config.default_handoff_variable

        if handoff is not None:
            declared = {defn.name for defn in template.variable_defs}
            if handoff not in declared:
                problems.append(
                    f"'{template.id}' declares no variable '{handoff}' to receive the previous output"
                )
        plan.append((template, step, handoff if index > 0 else None))

    if problems:
        raise ValidationError(
            "Invalid hand-off configuration: " + "; ".join(problems),
            fields=["steps"],
        )
    return plan


def summarize_run(group_name: str, steps: list[StepResult]) -> GroupRunSummary:
    """Counts, success rate and total time for a finished run."""
    total = len(steps)
    completed = sum(1 for s in steps if s.status == StepStatus.COMPLETED)
    skipped = sum(1 for s in steps if s.status == StepStatus.SKIPPED)
    failed = sum(1 for s in steps if s.status == StepStatus.FAILED)
    success_rate = (completed / total) * 100 if total else 0.0
    total_time = sum(s.execution_time_ms for s in steps)

    return GroupRunSummary(
        total=total,
        completed=completed,
        skipped=skipped,
        failed=failed,
        success_rate=round(success_rate, 1),
        total_execution_time_ms=total_time,
        summary=(
            f"Tag group '{group_name}' run finished. "
            f"{completed}/{total} steps successful ({success_rate:.1f}% success rate). "
            f"Total execution time: {total_time / 1000:.2f}s."
        ),
    )


def run_tag_group(
    group_name: str,
    templates: Iterable[PromptTemplate],
    config: GroupRunConfig,
    service: PromptExecutionService,
    *,
    cancellation_check: Optional[Callable[[], bool]] = None,
    progress_callback: Optional[Callable[[str], None]] = None,
) -> GroupRunResult:
    """Run every template of a tag group sequentially.

    Args:
        group_name: Tag prefix identifying the group
        templates: Template catalog to draw the group's members from
        config: Workflow context, inputs, hand-off and retry settings
        service: Execution service; each attempt is recorded through it
        cancellation_check: Callable that returns True to stop before the next step
        progress_callback: Callable for progress updates

    Returns:
        GroupRunResult with one StepResult per member template

    Raises:
        ValidationError: Unknown or single-template group, or invalid step
            configuration (nothing runs)
        PersistenceError: A step's record could not be written (run aborted)
    """
    group = get_group(templates, group_name)
    if group is None:
        raise ValidationError(f"Tag group not found: {group_name}", fields=["group"])
    members = group.templates

    plan = _plan_steps(group_name, members, config)
    started_at = utc_now()
    start_time = time.time()

    logger.info(
        f"Starting tag group '{group_name}': {len(plan)} steps, "
        f"max_attempts={config.max_attempts}, stop_on_error={config.stop_on_error}"
    )

    results: list[StepResult] = []
    previous_output: Optional[str] = None
    halted = False
    cancelled = False

    for index, (template, step, handoff) in enumerate(plan):
        order = _step_order(template, group_name, index + 1)

        if not halted and cancellation_check and cancellation_check():
            logger.info(f"Tag group '{group_name}' cancelled before step {index + 1}")
            halted = True
            cancelled = True

        inputs = {**config.shared_inputs, **step.inputs}
        if handoff is not None and previous_output is not None:
            inputs[handoff] = previous_output

        if halted:
            results.append(
                StepResult(
                    order=order,
                    template_id=template.id,
                    template_name=template.name,
                    status=StepStatus.SKIPPED,
                    inputs=inputs,
                )
            )
            continue

        if progress_callback:
            progress_callback(f"Step {index + 1}/{len(plan)}: {template.name}")

        step_result = _run_step(template, order, inputs, config, service)
        results.append(step_result)

        if step_result.status == StepStatus.COMPLETED:
            previous_output = step_result.output
        else:
            previous_output = None
            if config.stop_on_error:
                halted = True

    if cancelled:
        status = GroupRunStatus.CANCELLED
    elif any(r.status == StepStatus.FAILED for r in results):
        status = GroupRunStatus.FAILED
    else:
        status = GroupRunStatus.COMPLETED

    summary = summarize_run(group_name, results)
    duration_ms = int((time.time() - start_time) * 1000)
    logger.info(f"Tag group '{group_name}' {status.value} in {duration_ms:,}ms: {summary.summary}")

    return GroupRunResult(
        group_name=group_name,
        status=status,
        steps=results,
        summary=summary,
        started_at=started_at,
        finished_at=utc_now(),
    )


def _run_step(
    template: PromptTemplate,
    order: int,
    inputs: dict,
    config: GroupRunConfig,
    service: PromptExecutionService,
) -> StepResult:
    """Execute one step, retrying provider failures up to max_attempts."""
    request = ExecutionRequest(
        template_id=template.id,
        inputs=inputs,
        model=config.model,
        app=config.app,
        stage=config.stage,
        feature=config.feature,
        project_id=config.project_id,
    )

    record_ids: list[str] = []
    total_time = 0
    result = None

    for attempt in range(1, config.max_attempts + 1):
        outcome = service.execute(request)
        record_ids.append(outcome.record.id)
        total_time += outcome.result.execution_time_ms
        result = outcome.result

        if result.succeeded or result.error_kind not in RETRYABLE_KINDS:
            break
        if attempt < config.max_attempts:
            logger.warning(
                f"[{template.id}] Attempt {attempt}/{config.max_attempts} failed: "
                f"{result.error_message}, retrying"
            )

    return StepResult(
        order=order,
        template_id=template.id,
        template_name=template.name,
        status=StepStatus.COMPLETED if result.succeeded else StepStatus.FAILED,
        attempts=len(record_ids),
        inputs=inputs,
        record_ids=record_ids,
        output=result.output,
        error_message=result.error_message,
        execution_time_ms=total_time,
    )
