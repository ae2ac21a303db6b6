"""Workflow service: CRUD, definition validation and activation."""

import logging
from typing import Any, Iterable, Optional, Sequence
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import StepType
from core.exceptions import ConflictError, NotFoundError, ValidationError
from db.models.workflow import Workflow
from db.models.workflow_run import WorkflowRun
from db.models.workflow_step import WorkflowStep
from services.base import BaseService
from steps.registry import StepExecutorRegistry
from workflow.conditions import validate_condition
from workflow.loops import parse_loop_config
from workflow.templating import validate_template_variables

logger = logging.getLogger(__name__)

STEP_FIELDS = (
    "step_order",
    "step_type",
    "action_type",
    "name",
    "action_config",
    "condition",
    "else_goto_step",
    "is_required",
    "timeout_seconds",
)


def validate_steps(steps: Sequence[dict[str, Any]], registry: StepExecutorRegistry) -> list[str]:
    """Return problems with a list of step definitions (empty when valid)."""
    errors: list[str] = []
    seen_orders: set[int] = set()
    for index, step in enumerate(steps):
        label = f"steps[{index}]"
        order = step["step_order"]
        if order in seen_orders:
            errors.append(f"{label}: duplicate step_order {order}")
        seen_orders.add(order)

        if step.get("step_type", StepType.ACTION.value) == StepType.CONDITION.value:
            errors.extend(validate_condition(step.get("condition"), f"{label}.condition"))
            goto = step.get("else_goto_step")
            if goto is not None and goto <= order:
                errors.append(f"{label}: else_goto_step must be greater than step_order {order}")
            continue

        if step.get("step_type") == StepType.LOOP.value:
            _, loop_errors = parse_loop_config(step.get("action_config"), f"{label}.action_config")
            errors.extend(loop_errors)
            continue

        action_type = step.get("action_type")
        if not action_type:
            errors.append(f"{label}: action_type is required for action steps")
        elif registry.get(action_type) is None:
            errors.append(f"{label}: unknown action_type '{action_type}'")
        for path in validate_template_variables(step.get("action_config") or {}):
            errors.append(f"{label}: unknown template variable '{path}'")
    return errors


class WorkflowService(BaseService[Workflow]):
    """Service for workflow management.

    Args:
        db: Request-scoped session
        registry: Executor registry used to validate action types
        trigger_validator: Callable(trigger_type, config) -> (is_valid, error),
            normally TriggerManager.validate_config
    """

    def __init__(self, db: AsyncSession, registry: StepExecutorRegistry, trigger_validator):
        super().__init__(Workflow, db)
        self.registry = registry
        self.trigger_validator = trigger_validator

    def validate_definition(
        self,
        trigger_type: str,
        trigger_config: dict,
        steps: Optional[Sequence[dict[str, Any]]],
    ) -> None:
        """Raise ValidationError listing every problem with a definition."""
        errors: list[str] = []
        is_valid, error = self.trigger_validator(trigger_type, trigger_config)
        if not is_valid:
            errors.append(f"trigger_config: {error}")
        if steps is not None:
            errors.extend(validate_steps(steps, self.registry))
        if errors:
            raise ValidationError("; ".join(errors))

    async def _reload(self, workflow_id: str, organization_id: str) -> Workflow:
        # populate_existing refreshes server-side defaults and the steps collection
        result = await self.db.execute(
            select(Workflow)
            .where(
                Workflow.id == workflow_id,
                Workflow.organization_id == organization_id,
                Workflow.is_deleted == False,
            )
            .execution_options(populate_existing=True)
        )
        workflow = result.scalar_one_or_none()
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    def _build_steps(self, steps: Iterable[dict[str, Any]]) -> list[WorkflowStep]:
        return [
            WorkflowStep(id=str(uuid4()), **{k: step.get(k) for k in STEP_FIELDS if k in step})
            for step in sorted(steps, key=lambda s: s["step_order"])
        ]

    async def get_workflow(self, workflow_id: str, organization_id: str) -> Workflow:
        return await self.get_owned(workflow_id, organization_id, "Workflow")

    async def list_workflows(
        self,
        organization_id: str,
        trigger_type: Optional[str] = None,
        is_active: Optional[bool] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[Workflow], int]:
        return await self.list(
            organization_id=organization_id,
            offset=offset,
            limit=limit,
            filters={"trigger_type": trigger_type, "is_active": is_active},
        )

    async def create_workflow(
        self,
        organization_id: str,
        created_by_id: Optional[str],
        name: str,
        trigger_type: str,
        trigger_config: Optional[dict] = None,
        description: str = "",
        steps: Optional[list[dict[str, Any]]] = None,
    ) -> Workflow:
        """Create a workflow (inactive) with its steps."""
        trigger_config = trigger_config or {}
        steps = steps or []
        self.validate_definition(trigger_type, trigger_config, steps)

        workflow = Workflow(
            id=str(uuid4()),
            organization_id=organization_id,
            created_by_id=created_by_id,
            name=name,
            description=description,
            trigger_type=trigger_type,
            trigger_config=trigger_config,
            is_active=False,
            steps=self._build_steps(steps),
        )
        self.db.add(workflow)
        await self.db.flush()
        logger.info("Workflow created: %s (%d steps)", workflow.id, len(steps))
        return await self._reload(workflow.id, organization_id)

    async def update_workflow(
        self,
        workflow_id: str,
        organization_id: str,
        updates: dict[str, Any],
    ) -> Workflow:
        """Apply a partial update; ``steps`` replaces the whole step list."""
        workflow = await self.get_workflow(workflow_id, organization_id)

        trigger_type = updates.get("trigger_type") or workflow.trigger_type
        trigger_config = updates.get("trigger_config")
        if trigger_config is None:
            trigger_config = workflow.trigger_config or {}
        steps = updates.get("steps")
        self.validate_definition(trigger_type, trigger_config, steps)

        await self.apply_updates(
            workflow,
            {
                **{k: v for k, v in updates.items() if k in ("name", "description") and v is not None},
                "trigger_type": trigger_type,
                "trigger_config": trigger_config,
            },
            allowed=("name", "description", "trigger_type", "trigger_config"),
        )
        if steps is not None:
            workflow.steps = self._build_steps(steps)
        await self.db.flush()
        return await self._reload(workflow_id, organization_id)

    async def set_active(self, workflow_id: str, organization_id: str, active: bool) -> Workflow:
        """Activate or deactivate a workflow."""
        workflow = await self.get_workflow(workflow_id, organization_id)
        if active:
            # Saved definitions may predate a config rule
            self.validate_definition(
                workflow.trigger_type,
                workflow.trigger_config or {},
                [{k: getattr(s, k) for k in STEP_FIELDS} for s in workflow.steps],
            )
        await self.apply_updates(workflow, {"is_active": active}, allowed=("is_active",))
        return await self._reload(workflow_id, organization_id)

    async def delete_workflow(self, workflow_id: str, organization_id: str) -> None:
        """Soft-delete a workflow that has never run.

        Raises:
            ConflictError: When runs reference the workflow (deactivate it instead)
        """
        await self.get_workflow(workflow_id, organization_id)
        run_count = (
            await self.db.execute(
                select(func.count()).select_from(WorkflowRun).where(
                    WorkflowRun.workflow_id == workflow_id,
                )
            )
        ).scalar() or 0
        if run_count:
            raise ConflictError(
                f"Workflow has {run_count} run(s); deactivate it instead of deleting"
            )
        await self.soft_delete(workflow_id, organization_id)
