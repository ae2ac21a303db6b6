"""CRM mutation steps: contacts, tags, opportunities and activity entries."""

from datetime import date
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select

from core.exceptions import StepConfigurationError
from db.models.activity import Activity
from db.models.company import Company
from db.models.contact import Contact
from db.models.opportunity import Opportunity
from db.models.tag import Tag
from services.base import BaseService
from steps.base_step import BaseStepExecutor, StepOutcome, resolve_reference, tenant_session
from workflow.context import RunContext

CONTACT_COLUMNS = ("first_name", "last_name", "email", "phone", "title", "notes")
OPPORTUNITY_COLUMNS = (
    "name", "description", "stage", "value", "probability", "expected_close_date", "notes",
)


def _split_contact_fields(values: Dict[str, Any]) -> tuple[Dict[str, Any], Dict[str, Any]]:
    """Separate contact columns from free-form custom fields."""
    columns = {k: v for k, v in values.items() if k in CONTACT_COLUMNS}
    custom = {k: v for k, v in values.items() if k not in CONTACT_COLUMNS and k != "company_id"}
    return columns, custom


class CreateContactConfig(BaseModel):
    company_id: Optional[str] = None
    company_field: Optional[str] = None
    first_name: str = Field(min_length=1)
    last_name: str = ""
    email: Optional[str] = None
    additional_fields: Dict[str, Any] = Field(default_factory=dict)


class CreateContactStep(BaseStepExecutor):
    """Create a contact, optionally attached to a company."""

    action_type = "create_contact"
    display_name = "Create Contact"
    description = "Add a contact to the CRM"
    config_model = CreateContactConfig

    async def execute(self, config: CreateContactConfig, context: RunContext) -> StepOutcome:
        company_ref = resolve_reference(
            context, config.company_id, config.company_field, "company", required=False
        )
        columns, custom = _split_contact_fields(config.additional_fields)

        async with tenant_session(context) as session:
            company_id = None
            if company_ref:
                company = await BaseService(Company, session).get_owned(
                    company_ref, context.organization_id, "Company"
                )
                company_id = company.id
            contact = await BaseService(Contact, session).create({
                **columns,
                "organization_id": context.organization_id,
                "company_id": company_id,
                "first_name": config.first_name,
                "last_name": config.last_name,
                "email": config.email,
                "custom_fields": custom or None,
            })

        return StepOutcome.ok({"contact_id": contact.id, "company_id": company_id})


class UpdateContactConfig(BaseModel):
    contact_id: Optional[str] = None
    contact_field: Optional[str] = None
    updates: Dict[str, Any]


class UpdateContactStep(BaseStepExecutor):
    """Update contact columns; unknown keys are merged into custom_fields."""

    action_type = "update_contact"
    display_name = "Update Contact"
    description = "Change fields of an existing contact"
    config_model = UpdateContactConfig

    async def execute(self, config: UpdateContactConfig, context: RunContext) -> StepOutcome:
        contact_id = resolve_reference(context, config.contact_id, config.contact_field, "contact")
        columns, custom = _split_contact_fields(config.updates)

        async with tenant_session(context) as session:
            service = BaseService(Contact, session)
            contact = await service.get_owned(contact_id, context.organization_id, "Contact")

            if config.updates.get("company_id"):
                company = await BaseService(Company, session).get_owned(
                    config.updates["company_id"], context.organization_id, "Company"
                )
                columns["company_id"] = company.id
            if custom:
                columns["custom_fields"] = {**(contact.custom_fields or {}), **custom}

            changed = await service.apply_updates(
                contact, columns, allowed=(*CONTACT_COLUMNS, "company_id", "custom_fields")
            )

        return StepOutcome.ok({"contact_id": contact.id, "updated_fields": changed})


class TagConfig(BaseModel):
    entity_type: Literal["contact", "company"]
    entity_field: str = Field(min_length=1)
    tag_name: str = Field(min_length=1)


class _TagStep(BaseStepExecutor):
    config_model = TagConfig

    async def _load(self, session, config: TagConfig, context: RunContext):
        entity_id = resolve_reference(context, None, config.entity_field, config.entity_type)
        model = Contact if config.entity_type == "contact" else Company
        entity = await BaseService(model, session).get_owned(
            entity_id, context.organization_id, config.entity_type.capitalize()
        )
        result = await session.execute(
            select(Tag).where(
                Tag.organization_id == context.organization_id,
                Tag.entity_type == config.entity_type,
                Tag.entity_id == entity.id,
                Tag.name == config.tag_name.strip(),
            )
        )
        return entity, result.scalar_one_or_none()


class AddTagStep(_TagStep):
    """Tag a contact or company; an existing tag is left alone."""

    action_type = "add_tag"
    display_name = "Add Tag"
    description = "Attach a tag to a contact or company"

    async def execute(self, config: TagConfig, context: RunContext) -> StepOutcome:
        async with tenant_session(context) as session:
            entity, existing = await self._load(session, config, context)
            if existing is None:
                await BaseService(Tag, session).create({
                    "organization_id": context.organization_id,
                    "entity_type": config.entity_type,
                    "entity_id": entity.id,
                    "name": config.tag_name.strip(),
                })
        return StepOutcome.ok({
            "entity_id": entity.id,
            "tag": config.tag_name.strip(),
            "changed": existing is None,
        })


class RemoveTagStep(_TagStep):
    """Remove a tag from a contact or company; a missing tag is not an error."""

    action_type = "remove_tag"
    display_name = "Remove Tag"
    description = "Detach a tag from a contact or company"

    async def execute(self, config: TagConfig, context: RunContext) -> StepOutcome:
        async with tenant_session(context) as session:
            entity, existing = await self._load(session, config, context)
            if existing is not None:
                await session.delete(existing)
        return StepOutcome.ok({
            "entity_id": entity.id,
            "tag": config.tag_name.strip(),
            "changed": existing is not None,
        })


class UpdateOpportunityConfig(BaseModel):
    opportunity_id: Optional[str] = None
    opportunity_field: Optional[str] = None
    updates: Dict[str, Any]


class UpdateOpportunityStep(BaseStepExecutor):
    """Update stage, value, probability and other opportunity fields."""

    action_type = "update_opportunity"
    display_name = "Update Opportunity"
    description = "Change fields of a sales opportunity"
    config_model = UpdateOpportunityConfig

    async def execute(self, config: UpdateOpportunityConfig, context: RunContext) -> StepOutcome:
        opportunity_id = resolve_reference(
            context, config.opportunity_id, config.opportunity_field, "opportunity"
        )
        values = {k: v for k, v in config.updates.items() if k in OPPORTUNITY_COLUMNS}
        if not values:
            raise StepConfigurationError(
                f"No updatable opportunity fields in {sorted(config.updates)}"
            )
        if isinstance(values.get("expected_close_date"), str):
            try:
                values["expected_close_date"] = date.fromisoformat(values["expected_close_date"][:10])
            except ValueError:
                raise StepConfigurationError(
                    f"Invalid expected_close_date: {values['expected_close_date']}"
                )
        for numeric in ("value", "probability"):
            if values.get(numeric) not in (None, ""):
                try:
                    values[numeric] = float(values[numeric]) if numeric == "value" else int(values[numeric])
                except (TypeError, ValueError):
                    raise StepConfigurationError(f"Invalid {numeric}: {values[numeric]!r}")

        async with tenant_session(context) as session:
            service = BaseService(Opportunity, session)
            opportunity = await service.get_owned(
                opportunity_id, context.organization_id, "Opportunity"
            )
            changed = await service.apply_updates(opportunity, values, allowed=OPPORTUNITY_COLUMNS)

        return StepOutcome.ok({"opportunity_id": opportunity.id, "updated_fields": changed})


class CreateActivityConfig(BaseModel):
    company_id: Optional[str] = None
    company_field: Optional[str] = None
    message: str = Field(min_length=1)
    entity_type: str = Field(min_length=1)
    entity_field: Optional[str] = None
    event_type: str = Field(min_length=1)


class CreateActivityStep(BaseStepExecutor):
    """Write an entry to a company's activity timeline."""

    action_type = "create_activity"
    display_name = "Log Activity"
    description = "Record an activity entry for a company or record"
    config_model = CreateActivityConfig

    async def execute(self, config: CreateActivityConfig, context: RunContext) -> StepOutcome:
        company_ref = resolve_reference(
            context, config.company_id, config.company_field, "company", required=False
        )
        entity_id = (
            resolve_reference(context, None, config.entity_field, config.entity_type)
            if config.entity_field else context.entity_id
        )

        async with tenant_session(context) as session:
            company_id = None
            if company_ref:
                company = await BaseService(Company, session).get_owned(
                    company_ref, context.organization_id, "Company"
                )
                company_id = company.id
            activity = await BaseService(Activity, session).create({
                "organization_id": context.organization_id,
                "company_id": company_id,
                "entity_type": config.entity_type,
                "entity_id": entity_id,
                "event_type": config.event_type,
                "message": config.message,
                "details": {"workflow_id": context.workflow_id, "run_id": context.run_id},
            })

        return StepOutcome.ok({"activity_id": activity.id, "company_id": company_id})


CRM_STEP_TYPES = {
    "create_contact": CreateContactStep,
    "update_contact": UpdateContactStep,
    "add_tag": AddTagStep,
    "remove_tag": RemoveTagStep,
    "update_opportunity": UpdateOpportunityStep,
    "create_activity": CreateActivityStep,
}
