"""SQLAlchemy implementation of the workflow engine's persistence interface.

Every method opens its own short transaction, so a run's progress is
durable step by step and a crash mid-run leaves the finished steps on
record.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import func, select, update

from core.constants import PLANS_WITHOUT_WORKFLOWS, RunStatus, StepStatus
from db.models import Organization, Workflow, WorkflowRun, WorkflowRunStep
from workflow.store import (
    RunRecord,
    StepDefinition,
    StepResult,
    WorkflowDefinition,
    WorkflowStore,
)

MAX_SERIALIZE_DEPTH = 10


def _safe_serialize(obj: Any, depth: int = 0) -> Any:
    """Recursively ensure all values are JSON-serializable."""
    if depth > MAX_SERIALIZE_DEPTH:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): _safe_serialize(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_safe_serialize(v, depth + 1) for v in obj]
    return str(obj)


def workflow_to_definition(workflow: Workflow) -> WorkflowDefinition:
    """Convert an ORM workflow (with steps loaded) to the engine's view."""
    return WorkflowDefinition(
        id=workflow.id,
        organization_id=workflow.organization_id,
        name=workflow.name,
        trigger_type=workflow.trigger_type,
        trigger_config=dict(workflow.trigger_config or {}),
        is_active=workflow.is_active,
        last_run_at=workflow.last_run_at,
        steps=[
            StepDefinition(
                id=step.id,
                step_order=step.step_order,
                action_type=step.action_type,
                step_type=step.step_type,
                name=step.name,
                action_config=dict(step.action_config or {}),
                condition=step.condition,
                else_goto_step=step.else_goto_step,
                is_required=step.is_required,
                timeout_seconds=step.timeout_seconds,
            )
            for step in workflow.steps
            if not step.is_deleted
        ],
    )


def run_to_record(run: WorkflowRun) -> RunRecord:
    return RunRecord(
        id=run.id,
        workflow_id=run.workflow_id,
        organization_id=run.organization_id,
        trigger_type=run.trigger_type,
        status=RunStatus(run.status),
        started_at=run.started_at,
        trigger_data=run.trigger_data or {},
        context=run.context or {},
        error_message=run.error_message,
        triggered_by_id=run.triggered_by_id,
        ended_at=run.ended_at,
        steps=[
            StepResult(
                step_id=s.step_id,
                step_order=s.step_order,
                status=StepStatus(s.status),
                action_type=s.action_type,
                output=s.output,
                error=s.error,
                started_at=s.started_at,
                ended_at=s.ended_at,
            )
            for s in run.steps
        ],
    )


class SqlWorkflowStore(WorkflowStore):
    """WorkflowStore backed by the application database.

    Args:
        session_factory: async_sessionmaker producing AsyncSession objects
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get_workflow(
        self, workflow_id: str, organization_id: Optional[str] = None
    ) -> Optional[WorkflowDefinition]:
        query = select(Workflow).where(
            Workflow.id == workflow_id,
            Workflow.is_deleted == False,
        )
        if organization_id is not None:
            query = query.where(Workflow.organization_id == organization_id)
        async with self.session_factory() as session:
            workflow = (await session.execute(query)).scalar_one_or_none()
            return workflow_to_definition(workflow) if workflow else None

    async def list_active_workflows(
        self, trigger_type: str, organization_id: Optional[str] = None
    ) -> list[WorkflowDefinition]:
        query = (
            select(Workflow)
            .join(Organization, Organization.id == Workflow.organization_id)
            .where(
                Workflow.trigger_type == trigger_type,
                Workflow.is_active == True,
                Workflow.is_deleted == False,
                Organization.is_active == True,
                Organization.subscription_plan.not_in(sorted(PLANS_WITHOUT_WORKFLOWS)),
            )
            .order_by(Workflow.created_at, Workflow.id)
        )
        if organization_id is not None:
            query = query.where(Workflow.organization_id == organization_id)
        async with self.session_factory() as session:
            workflows = (await session.execute(query)).scalars().all()
            return [workflow_to_definition(w) for w in workflows]

    async def create_run(
        self,
        workflow: WorkflowDefinition,
        trigger_type: str,
        trigger_data: dict[str, Any],
        context: dict[str, Any],
        started_at: datetime,
        triggered_by_id: Optional[str] = None,
    ) -> RunRecord:
        run_id = str(uuid4())
        trigger_data = _safe_serialize(trigger_data)
        context = _safe_serialize(context)
        run = WorkflowRun(
            id=run_id,
            organization_id=workflow.organization_id,
            workflow_id=workflow.id,
            trigger_type=trigger_type,
            status=RunStatus.PENDING.value,
            trigger_data=trigger_data,
            context=context,
            triggered_by_id=triggered_by_id,
            started_at=started_at,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(run)
        return RunRecord(
            id=run_id,
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            trigger_type=trigger_type,
            status=RunStatus.PENDING,
            started_at=started_at,
            trigger_data=trigger_data,
            context=context,
            triggered_by_id=triggered_by_id,
        )

    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        error_message: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> None:
        values: dict[str, Any] = {"status": RunStatus(status).value}
        if error_message is not None:
            values["error_message"] = error_message
        if ended_at is not None:
            values["ended_at"] = ended_at
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(WorkflowRun).where(WorkflowRun.id == run_id).values(**values)
                )

    async def append_step_result(self, run_id: str, result: StepResult) -> None:
        row = WorkflowRunStep(
            id=str(uuid4()),
            run_id=run_id,
            step_id=result.step_id,
            step_order=result.step_order,
            action_type=result.action_type,
            status=StepStatus(result.status).value,
            output=_safe_serialize(result.output),
            error=result.error,
            started_at=result.started_at,
            ended_at=result.ended_at,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(row)

    async def list_runs(
        self,
        workflow_id: str,
        organization_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RunRecord], int]:
        conditions = [
            WorkflowRun.workflow_id == workflow_id,
            WorkflowRun.organization_id == organization_id,
            WorkflowRun.is_deleted == False,
        ]
        if status:
            conditions.append(WorkflowRun.status == status)

        query = (
            select(WorkflowRun)
            .where(*conditions)
            .order_by(WorkflowRun.started_at.desc(), WorkflowRun.id.desc())
            .offset(offset)
            .limit(limit)
        )
        count_query = select(func.count()).select_from(WorkflowRun).where(*conditions)
        async with self.session_factory() as session:
            runs = (await session.execute(query)).scalars().all()
            total = (await session.execute(count_query)).scalar() or 0
            return [run_to_record(r) for r in runs], total

    async def get_run(self, run_id: str, organization_id: str) -> Optional[RunRecord]:
        async with self.session_factory() as session:
            run = (
                await session.execute(
                    select(WorkflowRun).where(
                        WorkflowRun.id == run_id,
                        WorkflowRun.organization_id == organization_id,
                        WorkflowRun.is_deleted == False,
                    )
                )
            ).scalar_one_or_none()
            return run_to_record(run) if run else None

    async def record_workflow_run(self, workflow_id: str, started_at: datetime) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Workflow)
                    .where(Workflow.id == workflow_id)
                    .values(last_run_at=started_at, run_count=Workflow.run_count + 1)
                )
