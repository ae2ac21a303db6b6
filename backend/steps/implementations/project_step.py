"""Project creation steps."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import or_, select

from core.exceptions import ConflictError, NotFoundError
from db.models.company import Company
from db.models.opportunity import Opportunity
from db.models.project import Project, ProjectTemplate
from db.models.task import Task
from services.base import BaseService
from steps.base_step import BaseStepExecutor, StepOutcome, resolve_reference, tenant_session
from workflow.context import RunContext


async def _company_id(session, context: RunContext, company_ref: Optional[str]) -> Optional[str]:
    if not company_ref:
        return None
    company = await BaseService(Company, session).get_owned(
        company_ref, context.organization_id, "Company"
    )
    return company.id


class CreateProjectConfig(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    company_id: Optional[str] = None
    company_field: Optional[str] = None


class CreateProjectStep(BaseStepExecutor):
    """Create an empty project."""

    action_type = "create_project"
    display_name = "Create Project"
    description = "Create a new project"
    config_model = CreateProjectConfig

    async def execute(self, config: CreateProjectConfig, context: RunContext) -> StepOutcome:
        company_ref = resolve_reference(
            context, config.company_id, config.company_field, "company", required=False
        )
        async with tenant_session(context) as session:
            project = await BaseService(Project, session).create({
                "organization_id": context.organization_id,
                "company_id": await _company_id(session, context, company_ref),
                "name": config.name,
                "description": config.description,
            })
        return StepOutcome.ok({"project_id": project.id, "name": project.name})


class CreateProjectFromTemplateConfig(CreateProjectConfig):
    template_id: str = Field(min_length=1)


class CreateProjectFromTemplateStep(BaseStepExecutor):
    """Create a project and copy the template's task list into it.

    Shared templates (no organization) are visible to every tenant.
    """

    action_type = "create_project_from_template"
    display_name = "Create Project From Template"
    description = "Create a project pre-populated with a template's tasks"
    config_model = CreateProjectFromTemplateConfig

    async def execute(self, config: CreateProjectFromTemplateConfig, context: RunContext) -> StepOutcome:
        company_ref = resolve_reference(
            context, config.company_id, config.company_field, "company", required=False
        )
        async with tenant_session(context) as session:
            result = await session.execute(
                select(ProjectTemplate).where(
                    ProjectTemplate.id == config.template_id,
                    ProjectTemplate.is_deleted == False,
                    or_(
                        ProjectTemplate.organization_id == context.organization_id,
                        ProjectTemplate.organization_id.is_(None),
                    ),
                )
            )
            template = result.scalar_one_or_none()
            if template is None:
                raise NotFoundError(f"Project template {config.template_id} not found")

            project = await BaseService(Project, session).create({
                "organization_id": context.organization_id,
                "company_id": await _company_id(session, context, company_ref),
                "template_id": template.id,
                "name": config.name,
                "description": config.description or template.description,
            })

            now = datetime.now(timezone.utc)
            tasks = BaseService(Task, session)
            task_count = 0
            for item in template.tasks or []:
                if not isinstance(item, dict) or not item.get("title"):
                    continue
                offset = item.get("due_date_offset_days")
                await tasks.create({
                    "organization_id": context.organization_id,
                    "project_id": project.id,
                    "title": item["title"],
                    "description": item.get("description"),
                    "priority": item.get("priority", "medium"),
                    "due_date": now + timedelta(days=int(offset)) if offset is not None else None,
                })
                task_count += 1

        return StepOutcome.ok({"project_id": project.id, "task_count": task_count})


class CreateProjectFromOpportunityConfig(BaseModel):
    opportunity_id: Optional[str] = None
    opportunity_field: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class CreateProjectFromOpportunityStep(BaseStepExecutor):
    """Convert a won opportunity into a project (once)."""

    action_type = "create_project_from_opportunity"
    display_name = "Convert Opportunity To Project"
    description = "Create a project from a sales opportunity"
    config_model = CreateProjectFromOpportunityConfig

    async def execute(self, config: CreateProjectFromOpportunityConfig, context: RunContext) -> StepOutcome:
        opportunity_id = resolve_reference(
            context, config.opportunity_id, config.opportunity_field, "opportunity"
        )
        async with tenant_session(context) as session:
            opportunity = await BaseService(Opportunity, session).get_owned(
                opportunity_id, context.organization_id, "Opportunity"
            )
            if opportunity.converted_project_id:
                raise ConflictError(
                    f"Opportunity {opportunity.id} was already converted "
                    f"to project {opportunity.converted_project_id}"
                )
            project = await BaseService(Project, session).create({
                "organization_id": context.organization_id,
                "company_id": opportunity.company_id,
                "opportunity_id": opportunity.id,
                "name": config.name or opportunity.name,
                "description": config.description or opportunity.description,
            })
            opportunity.converted_project_id = project.id

        return StepOutcome.ok({"project_id": project.id, "opportunity_id": opportunity.id})


PROJECT_STEP_TYPES = {
    "create_project": CreateProjectStep,
    "create_project_from_template": CreateProjectFromTemplateStep,
    "create_project_from_opportunity": CreateProjectFromOpportunityStep,
}
