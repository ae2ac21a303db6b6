"""
Messaging steps: email, in-app/push notifications and Slack.

send_email, send_slack and create_slack_channel call third-party services;
send_notification and send_push write a Notification row for a member of
the workflow's organization.
"""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from core.exceptions import InternalError
from db.models.notification import Notification
from db.models.user import User
from services.base import BaseService
from steps.base_step import BaseStepExecutor, StepOutcome, resolve_reference, tenant_session
from workflow.context import RunContext


class SendEmailConfig(BaseModel):
    to: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    body_html: str = Field(min_length=1)
    body_text: Optional[str] = None
    from_name: Optional[str] = None


class SendEmailStep(BaseStepExecutor):
    """Send an email through the configured SMTP server."""

    action_type = "send_email"
    display_name = "Send Email"
    description = "Send an email to one or more recipients"
    is_external = True
    config_model = SendEmailConfig

    async def execute(self, config: SendEmailConfig, context: RunContext) -> StepOutcome:
        mailer = context.resources.mailer
        if mailer is None:
            raise InternalError("Email channel not configured")

        result = await mailer.send(
            to=config.to,
            subject=config.subject,
            body_html=config.body_html,
            body_text=config.body_text,
            from_name=config.from_name,
        )
        if not result.success:
            return StepOutcome.fail(result.error or "Email delivery failed")
        return StepOutcome.ok({"sent": True, "to": config.to})


class SendNotificationConfig(BaseModel):
    user_id: Optional[str] = None
    user_field: Optional[str] = None
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = "info"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SendNotificationStep(BaseStepExecutor):
    """Create an in-app notification for an organization member."""

    action_type = "send_notification"
    display_name = "Send Notification"
    description = "Notify a user inside the application"
    config_model = SendNotificationConfig
    channel = "in_app"

    async def execute(self, config: SendNotificationConfig, context: RunContext) -> StepOutcome:
        user_id = resolve_reference(context, config.user_id, config.user_field, "user")
        async with tenant_session(context) as session:
            user = await BaseService(User, session).get_owned(
                user_id, context.organization_id, "User"
            )
            notification = await BaseService(Notification, session).create({
                "organization_id": context.organization_id,
                "user_id": user.id,
                "channel": self.channel,
                "type": config.type,
                "title": config.title,
                "message": config.message,
                "payload": {
                    **config.metadata,
                    "workflow_id": context.workflow_id,
                    "run_id": context.run_id,
                },
            })
        return StepOutcome.ok({"notification_id": notification.id, "user_id": user.id})


class SendPushStep(SendNotificationStep):
    """Queue a push notification (delivered to devices by the push gateway)."""

    action_type = "send_push"
    display_name = "Send Push Notification"
    description = "Send a push notification to a user's devices"
    channel = "push"


class SendSlackConfig(BaseModel):
    channel: str = Field(min_length=1)
    message: str = Field(min_length=1)
    use_blocks: bool = False
    notify_channel: bool = False
    username: Optional[str] = None
    icon_emoji: Optional[str] = None


class SendSlackStep(BaseStepExecutor):
    """Post a message to a Slack channel."""

    action_type = "send_slack"
    display_name = "Send Slack Message"
    description = "Post a message to a Slack channel"
    is_external = True
    config_model = SendSlackConfig

    async def execute(self, config: SendSlackConfig, context: RunContext) -> StepOutcome:
        slack = context.resources.slack
        if slack is None:
            raise InternalError("Slack channel not configured")

        text = f"<!channel> {config.message}" if config.notify_channel else config.message
        blocks = None
        if config.use_blocks:
            blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]

        result = await slack.post_message(
            channel=config.channel,
            text=text,
            blocks=blocks,
            username=config.username,
            icon_emoji=config.icon_emoji,
        )
        if not result.success:
            return StepOutcome.fail(result.error or "Slack delivery failed")
        return StepOutcome.ok({
            "channel": result.data.get("channel", config.channel),
            "ts": result.data.get("ts"),
        })


def slack_channel_name(name: str) -> str:
    """Normalize to Slack's channel naming rules (lowercase, no spaces, max 80)."""
    slug = re.sub(r"[^a-z0-9_-]+", "-", name.strip().lower()).strip("-")
    return slug[:80]


class CreateSlackChannelConfig(BaseModel):
    name: str = Field(min_length=1)
    is_private: bool = False
    invite_user_ids: List[str] = Field(default_factory=list)


class CreateSlackChannelStep(BaseStepExecutor):
    """Create a Slack channel and optionally invite members."""

    action_type = "create_slack_channel"
    display_name = "Create Slack Channel"
    description = "Create a Slack channel for a project or deal"
    is_external = True
    config_model = CreateSlackChannelConfig

    async def execute(self, config: CreateSlackChannelConfig, context: RunContext) -> StepOutcome:
        slack = context.resources.slack
        if slack is None:
            raise InternalError("Slack channel not configured")

        name = slack_channel_name(config.name)
        if not name:
            return StepOutcome.fail(f"Channel name {config.name!r} has no usable characters")

        created = await slack.create_channel(name, is_private=config.is_private)
        if not created.success:
            return StepOutcome.fail(created.error or "Slack channel creation failed")

        channel_id = created.data.get("channel", {}).get("id")
        output: Dict[str, Any] = {"channel_id": channel_id, "name": name, "invited": 0}

        if config.invite_user_ids and channel_id:
            invited = await slack.invite(channel_id, config.invite_user_ids)
            if not invited.success:
                return StepOutcome.fail(
                    invited.error or "Slack invite failed", output=output
                )
            output["invited"] = len(config.invite_user_ids)
        return StepOutcome.ok(output)


MESSAGING_STEP_TYPES = {
    "send_email": SendEmailStep,
    "send_notification": SendNotificationStep,
    "send_push": SendPushStep,
    "send_slack": SendSlackStep,
    "create_slack_channel": CreateSlackChannelStep,
}
