"""Task mutation steps: create_task, update_task, bulk_update_tasks."""

from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from core.constants import TaskPriority, TaskStatus
from core.exceptions import StepConfigurationError
from db.models.project import Project
from db.models.task import Task
from db.models.user import User
from services.base import BaseService
from steps.base_step import BaseStepExecutor, StepOutcome, resolve_reference, tenant_session
from workflow.context import RunContext

PriorityName = Literal["low", "medium", "high", "critical"]


async def _owned_user_id(session, context: RunContext, user_id: str) -> str:
    user = await BaseService(User, session).get_owned(user_id, context.organization_id, "User")
    return user.id


class CreateTaskConfig(BaseModel):
    project_id: Optional[str] = None
    project_field: Optional[str] = None
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: Literal["todo", "in_progress", "done"] = "todo"
    priority: PriorityName = "medium"
    assignee_field: Optional[str] = None
    due_date_offset_days: Optional[int] = Field(None, ge=0)
    tags: List[str] = Field(default_factory=list)


class CreateTaskStep(BaseStepExecutor):
    """Create a task in one of the organization's projects."""

    action_type = "create_task"
    display_name = "Create Task"
    description = "Create a task in a project"
    config_model = CreateTaskConfig

    async def execute(self, config: CreateTaskConfig, context: RunContext) -> StepOutcome:
        project_id = resolve_reference(context, config.project_id, config.project_field, "project")
        assignee_ref = (
            resolve_reference(context, None, config.assignee_field, "assignee")
            if config.assignee_field else None
        )
        due_date = None
        if config.due_date_offset_days is not None:
            due_date = datetime.now(timezone.utc) + timedelta(days=config.due_date_offset_days)

        async with tenant_session(context) as session:
            project = await BaseService(Project, session).get_owned(
                project_id, context.organization_id, "Project"
            )
            assignee_id = (
                await _owned_user_id(session, context, assignee_ref) if assignee_ref else None
            )
            task = await BaseService(Task, session).create({
                "organization_id": context.organization_id,
                "project_id": project.id,
                "title": config.title,
                "description": config.description,
                "status": config.status,
                "priority": config.priority,
                "assignee_id": assignee_id,
                "due_date": due_date,
                "tags": config.tags,
            })

        return StepOutcome.ok({
            "task_id": task.id,
            "project_id": project.id,
            "title": task.title,
            "assignee_id": assignee_id,
        })


class TaskUpdates(BaseModel):
    status: Optional[Literal["todo", "in_progress", "done", "archived"]] = None
    priority: Optional[PriorityName] = None
    assignee_id: Optional[str] = None
    assignee_field: Optional[str] = None
    due_date: Optional[datetime] = None
    due_date_offset_days: Optional[int] = None


class UpdateTaskConfig(BaseModel):
    task_id: Optional[str] = None
    task_field: Optional[str] = None
    updates: TaskUpdates


class UpdateTaskStep(BaseStepExecutor):
    """Update status, priority, assignee or due date of a task.

    ``assignee_id: null`` unassigns; ``assignee_field`` picks the assignee
    from the run context.
    """

    action_type = "update_task"
    display_name = "Update Task"
    description = "Change fields of an existing task"
    config_model = UpdateTaskConfig

    async def execute(self, config: UpdateTaskConfig, context: RunContext) -> StepOutcome:
        task_id = resolve_reference(context, config.task_id, config.task_field, "task")
        updates = config.updates
        explicit = updates.model_fields_set

        values = {}
        if updates.status is not None:
            values["status"] = updates.status
        if updates.priority is not None:
            values["priority"] = updates.priority
        if updates.due_date is not None:
            values["due_date"] = updates.due_date
        elif updates.due_date_offset_days is not None:
            values["due_date"] = datetime.now(timezone.utc) + timedelta(
                days=updates.due_date_offset_days
            )

        async with tenant_session(context) as session:
            service = BaseService(Task, session)
            task = await service.get_owned(task_id, context.organization_id, "Task")

            if updates.assignee_field:
                ref = resolve_reference(context, None, updates.assignee_field, "assignee")
                values["assignee_id"] = await _owned_user_id(session, context, ref)
            elif "assignee_id" in explicit:
                values["assignee_id"] = (
                    await _owned_user_id(session, context, updates.assignee_id)
                    if updates.assignee_id else None
                )

            changed = await service.apply_updates(task, values, allowed=values.keys())

        return StepOutcome.ok({"task_id": task.id, "updated_fields": changed})


class BulkUpdateTasksConfig(BaseModel):
    task_ids_field: str = Field(min_length=1)
    operation: Literal["status", "priority", "reassign"]
    value: str = Field(min_length=1)


class BulkUpdateTasksStep(BaseStepExecutor):
    """Apply one change to every task listed at ``task_ids_field``.

    Ids that do not belong to the organization are counted as skipped.
    """

    action_type = "bulk_update_tasks"
    display_name = "Bulk Update Tasks"
    description = "Change status, priority or assignee of many tasks"
    config_model = BulkUpdateTasksConfig

    async def execute(self, config: BulkUpdateTasksConfig, context: RunContext) -> StepOutcome:
        raw = context.resolve(config.task_ids_field)
        if not isinstance(raw, list):
            raise StepConfigurationError(f"'{config.task_ids_field}' does not hold a list of task ids")
        task_ids = [item.get("id") if isinstance(item, dict) else item for item in raw]
        task_ids = [str(t) for t in task_ids if t]

        if config.operation == "status":
            if config.value not in {s.value for s in TaskStatus}:
                raise StepConfigurationError(f"Invalid task status: {config.value}")
            column, value = "status", config.value
        elif config.operation == "priority":
            if config.value not in {p.value for p in TaskPriority}:
                raise StepConfigurationError(f"Invalid task priority: {config.value}")
            column, value = "priority", config.value
        else:
            column, value = "assignee_id", config.value

        async with tenant_session(context) as session:
            if column == "assignee_id":
                value = await _owned_user_id(session, context, value)
            service = BaseService(Task, session)
            tasks = await service.list_owned(task_ids, context.organization_id)
            updated = 0
            for task in tasks:
                if await service.apply_updates(task, {column: value}, allowed=(column,)):
                    updated += 1

        return StepOutcome.ok({
            "updated_count": updated,
            "matched_count": len(tasks),
            "skipped_count": len(task_ids) - len(tasks),
        })


TASK_STEP_TYPES = {
    "create_task": CreateTaskStep,
    "update_task": UpdateTaskStep,
    "bulk_update_tasks": BulkUpdateTasksStep,
}
