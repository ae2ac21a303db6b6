"""Workflow Execution Engine: sequential step runner.

This is the core of the platform. It takes a workflow definition (an
ordered list of steps) and a trigger event, and executes the steps one
after another, handling:

- Templated step configs (``{{ steps.step_1.task_id }}``)
- Condition steps with an optional else-branch jump
- Loop steps that expand a list from the context
- Required vs optional steps (abort vs continue)
- Timeout per step
- A durable run record with one result per step

Run states:
    pending -> running -> succeeded | failed | partially_failed

A step bypassed by a condition, or not reached because a required step
failed, is recorded as ``skipped``. Terminal states are final; there
are no automatic retries.
"""

import asyncio
import math
from typing import Any, Optional

import structlog

from app.config import get_settings
from core.constants import RunStatus, StepStatus, StepType
from core.exceptions import BadRequestError, NotFoundError
from core.utils import utc_now
from steps.base_step import StepOutcome
from steps.registry import StepExecutorRegistry
from triggers.base import TriggerEvent
from workflow.conditions import evaluate_condition, validate_condition
from workflow.context import RunContext, StepResources
from workflow.loops import expand_loop, parse_loop_config
from workflow.store import (
    RunRecord,
    StepDefinition,
    StepResult,
    WorkflowDefinition,
    WorkflowStore,
)
from workflow.templating import interpolate_object

logger = structlog.get_logger(__name__)

SKIP_REASON_BRANCH = "Bypassed by condition"
SKIP_REASON_ABORTED = "Not executed: a required step failed"
RUN_INTERRUPTED = "Run interrupted before completion"


def find_duplicate_orders(steps: list[StepDefinition]) -> list[int]:
    """step_order values used by more than one step."""
    seen: set[int] = set()
    duplicates: set[int] = set()
    for step in steps:
        if step.step_order in seen:
            duplicates.add(step.step_order)
        seen.add(step.step_order)
    return sorted(duplicates)


class WorkflowEngine:
    """Runs workflows against a store and a step executor registry.

    Usage:
        engine = WorkflowEngine(store, registry, resources)
        run = await engine.execute(workflow, trigger_event)
    """

    def __init__(
        self,
        store: WorkflowStore,
        registry: StepExecutorRegistry,
        resources: Optional[StepResources] = None,
        settings=None,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings or get_settings()
        self.resources = resources or StepResources(settings=self.settings)

    # ─── Entry points ─────────────────────────────────────────

    async def run_workflow(
        self,
        workflow_id: str,
        event: TriggerEvent,
        organization_id: Optional[str] = None,
        require_active: bool = True,
    ) -> RunRecord:
        """Load a workflow by id and execute it.

        Raises:
            NotFoundError: Unknown workflow (or owned by another tenant)
            BadRequestError: Workflow inactive and ``require_active`` set
        """
        workflow = await self.store.get_workflow(workflow_id, organization_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        if require_active and not workflow.is_active:
            raise BadRequestError("Workflow is not active")
        return await self.execute(workflow, event)

    async def execute(self, workflow: WorkflowDefinition, event: TriggerEvent) -> RunRecord:
        """Execute a workflow for one trigger event and return the finished run.

        Step failures are recorded, never raised. Only a failing store
        propagates (after the run has been marked failed, if possible).
        """
        started_at = utc_now()
        steps = sorted(workflow.steps, key=lambda s: s.step_order)
        context = RunContext(
            run_id="",
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            workflow_name=workflow.name,
            trigger_type=event.trigger_type,
            trigger_data=event.data,
            event_type=event.event_type,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            triggered_by=event.user_id,
            triggered_at=event.timestamp,
            resources=self.resources,
        )

        run = await self.store.create_run(
            workflow,
            trigger_type=event.trigger_type,
            trigger_data=event.data,
            context=context.snapshot(),
            started_at=started_at,
            triggered_by_id=event.user_id,
        )
        context.run_id = run.id
        await self.store.record_workflow_run(workflow.id, started_at)

        log = logger.bind(run_id=run.id, workflow_id=workflow.id, trigger_type=event.trigger_type)
        log.info("Workflow run started", step_count=len(steps))

        duplicates = find_duplicate_orders(steps)
        if duplicates:
            error = f"Invalid workflow configuration: duplicate step_order {duplicates}"
            log.error("Workflow run rejected", error=error)
            return await self._finalize(run, RunStatus.FAILED, error)

        await self.store.update_run_status(run.id, RunStatus.RUNNING)
        try:
            status, error = await self._execute_steps(run, steps, context, log)
        except asyncio.CancelledError:
            log.warning("Workflow run cancelled")
            await self._finalize(run, RunStatus.FAILED, RUN_INTERRUPTED)
            raise
        except Exception as e:
            log.exception("Workflow run crashed", error=str(e))
            await self._finalize(run, RunStatus.FAILED, f"Internal error: {e}")
            raise

        log.info("Workflow run finished", status=status.value, error=error)
        return await self._finalize(run, status, error)

    # ─── Step loop ────────────────────────────────────────────

    async def _execute_steps(
        self,
        run: RunRecord,
        steps: list[StepDefinition],
        context: RunContext,
        log,
    ) -> tuple[RunStatus, Optional[str]]:
        """Run ``steps`` in order; returns the terminal status and error."""
        resume_at: Optional[float] = None
        abort_error: Optional[str] = None
        optional_failures: list[str] = []

        for step in steps:
            if abort_error is not None:
                await self._record_skipped(run, step, SKIP_REASON_ABORTED)
                continue
            if resume_at is not None and step.step_order < resume_at:
                await self._record_skipped(run, step, SKIP_REASON_BRANCH)
                continue
            resume_at = None

            result = await self._execute_step(step, context)
            await self.store.append_step_result(run.id, result)
            run.steps.append(result)

            if result.status == StepStatus.FAILED:
                label = f"Step {step.step_order} ({step.action_type or step.step_type})"
                if step.is_required:
                    abort_error = f"{label} failed: {result.error}"
                    log.warning("Required step failed, aborting run", step_order=step.step_order)
                else:
                    optional_failures.append(f"{label}: {result.error}")
                    log.warning("Optional step failed, continuing", step_order=step.step_order)
                continue

            context.record_output(step.id, step.step_order, result.output)

            if step.step_type == StepType.CONDITION.value and not result.output["result"]:
                # No else-branch: the rest of the workflow is skipped
                resume_at = step.else_goto_step if step.else_goto_step is not None else math.inf
                log.info(
                    "Condition false",
                    step_order=step.step_order,
                    else_goto_step=step.else_goto_step,
                )

        if abort_error is not None:
            return RunStatus.FAILED, abort_error
        if optional_failures:
            return RunStatus.PARTIALLY_FAILED, "; ".join(optional_failures)
        return RunStatus.SUCCEEDED, None

    async def _execute_step(self, step: StepDefinition, context: RunContext) -> StepResult:
        """Execute one step; failures come back as a failed StepResult."""
        started_at = utc_now()
        if step.step_type == StepType.CONDITION.value:
            outcome = self._evaluate_condition_step(step, context)
        elif step.step_type == StepType.LOOP.value:
            outcome = self._expand_loop_step(step, context)
        else:
            outcome = await self._run_action(step, context)
        return StepResult(
            step_id=step.id,
            step_order=step.step_order,
            status=StepStatus.SUCCEEDED if outcome.success else StepStatus.FAILED,
            action_type=step.action_type,
            output=outcome.output,
            error=outcome.error,
            started_at=started_at,
            ended_at=utc_now(),
        )

    def _evaluate_condition_step(self, step: StepDefinition, context: RunContext) -> StepOutcome:
        if step.else_goto_step is not None and step.else_goto_step <= step.step_order:
            return StepOutcome.fail(
                f"Invalid condition step: else_goto_step {step.else_goto_step} "
                f"must be greater than {step.step_order}"
            )
        errors = validate_condition(step.condition)
        if errors:
            return StepOutcome.fail(f"Invalid condition: {'; '.join(errors)}")

        namespace = context.namespace()
        condition = interpolate_object(step.condition, namespace)
        return StepOutcome.ok({"result": evaluate_condition(condition, namespace)})

    def _expand_loop_step(self, step: StepDefinition, context: RunContext) -> StepOutcome:
        config, errors = parse_loop_config(step.action_config)
        if errors:
            return StepOutcome.fail(f"Invalid loop: {'; '.join(errors)}")

        output = expand_loop(config, context.namespace())
        logger.info(
            "Loop expanded",
            run_id=context.run_id,
            step_order=step.step_order,
            iterations=output["iterations"],
        )
        return StepOutcome.ok(output)

    async def _run_action(self, step: StepDefinition, context: RunContext) -> StepOutcome:
        executor = self.registry.create_instance(step.action_type)
        if executor is None:
            return StepOutcome.fail(f"Unknown action type: {step.action_type}")

        config: dict[str, Any] = interpolate_object(step.action_config or {}, context.namespace())
        timeout = step.timeout_seconds or self.settings.STEP_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(executor.run(config, context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Step timed out",
                run_id=context.run_id,
                step_order=step.step_order,
                action_type=step.action_type,
                timeout=timeout,
            )
            return StepOutcome.fail(f"Step timed out after {timeout}s")

    # ─── Bookkeeping ──────────────────────────────────────────

    async def _record_skipped(self, run: RunRecord, step: StepDefinition, reason: str) -> None:
        now = utc_now()
        result = StepResult(
            step_id=step.id,
            step_order=step.step_order,
            status=StepStatus.SKIPPED,
            action_type=step.action_type,
            output={"skipped_reason": reason},
            started_at=now,
            ended_at=now,
        )
        await self.store.append_step_result(run.id, result)
        run.steps.append(result)

    async def _finalize(
        self, run: RunRecord, status: RunStatus, error: Optional[str]
    ) -> RunRecord:
        ended_at = utc_now()
        await self.store.update_run_status(run.id, status, error_message=error, ended_at=ended_at)
        run.status = status
        run.error_message = error
        run.ended_at = ended_at
        return run
