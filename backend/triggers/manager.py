"""Trigger Manager: the bridge between trigger resolvers and the engine.

The TriggerManager:
1. Registers a resolver for each trigger type
2. Validates trigger configs on workflow save
3. Turns webhook calls, internal events and schedule ticks into runs
4. Hands runs to the RunDispatcher so callers never wait on them

Built once per process (see app.main.create_app and the worker's
schedule poller) and passed where needed; there is no global instance.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

import structlog

from core.constants import TriggerType
from core.utils import utc_now
from triggers.base import BaseTriggerResolver, TriggerEvent
from triggers.handlers.event_bus import EventTriggerResolver, WorkflowEvent
from triggers.handlers.schedule import ScheduleTriggerResolver
from triggers.handlers.webhook import WebhookTriggerResolver
from workflow.dispatch import RunDispatcher
from workflow.engine import WorkflowEngine
from workflow.store import RunRecord, WorkflowDefinition

logger = structlog.get_logger(__name__)


class ManualTriggerResolver(BaseTriggerResolver):
    """Workflows that only run from the builder take no configuration."""

    trigger_type = TriggerType.MANUAL


class TriggerManager:
    """Central manager for all workflow triggers."""

    def __init__(
        self,
        engine: WorkflowEngine,
        dispatcher: Optional[RunDispatcher] = None,
        schedule_window_minutes: Optional[int] = None,
    ):
        self.engine = engine
        self.store = engine.store
        self.dispatcher = dispatcher or RunDispatcher()
        self.webhooks = WebhookTriggerResolver(self.store)
        self.schedules = ScheduleTriggerResolver(
            schedule_window_minutes or engine.settings.SCHEDULE_WINDOW_MINUTES
        )
        self.events = EventTriggerResolver()
        self._resolvers: dict[str, BaseTriggerResolver] = {}

        for resolver in (self.webhooks, self.schedules, self.events, ManualTriggerResolver()):
            self.register_resolver(resolver)

    def register_resolver(self, resolver: BaseTriggerResolver) -> None:
        """Register a trigger type resolver."""
        self._resolvers[resolver.trigger_type.value] = resolver
        logger.debug("Registered trigger resolver", trigger_type=resolver.trigger_type.value)

    def validate_config(self, trigger_type: str, config: dict) -> tuple[bool, Optional[str]]:
        """Validate a workflow's trigger_config for its trigger type."""
        resolver = self._resolvers.get(trigger_type)
        if resolver is None:
            return False, f"Unknown trigger type: {trigger_type}"
        return resolver.validate_config(config)

    def _dispatch(self, workflow: WorkflowDefinition, event: TriggerEvent):
        return self.dispatcher.dispatch(
            self.engine.execute(workflow, event),
            name=f"workflow-run:{workflow.id}",
            workflow_id=workflow.id,
            trigger_type=event.trigger_type,
        )

    # ─── Webhook ──────────────────────────────────────────────

    async def fire_webhook(
        self,
        workflow_id: str,
        body: bytes,
        headers: Mapping[str, str],
    ) -> tuple[WorkflowDefinition, TriggerEvent]:
        """Authenticate a webhook call and start its run in the background.

        Raises the resolver's BadRequest/NotFound/Unauthorized errors.
        """
        workflow, event = await self.webhooks.resolve(workflow_id, body, headers)
        self._dispatch(workflow, event)
        logger.info("Webhook trigger fired", workflow_id=workflow.id)
        return workflow, event

    # ─── Events ───────────────────────────────────────────────

    async def emit_event(self, event: WorkflowEvent) -> list[str]:
        """Start a run for every active event workflow matching ``event``.

        Returns:
            Ids of the workflows that matched
        """
        workflows = await self.store.list_active_workflows(
            TriggerType.EVENT.value, organization_id=event.organization_id
        )
        matched = []
        for workflow in workflows:
            if not self.events.matches(workflow.trigger_config, event):
                continue
            self._dispatch(workflow, self.events.build_event(workflow, event))
            matched.append(workflow.id)

        logger.info(
            "Event emitted",
            event_type=event.event_type,
            entity_type=event.entity_type,
            organization_id=event.organization_id,
            candidates=len(workflows),
            matched=len(matched),
        )
        return matched

    # ─── Schedules ────────────────────────────────────────────

    async def process_schedule_tick(self, now: Optional[datetime] = None) -> list[str]:
        """Start a run for every active schedule workflow due at ``now``.

        Returns:
            Ids of the workflows started
        """
        now = now or utc_now()
        workflows = await self.store.list_active_workflows(TriggerType.SCHEDULE.value)
        fired = []
        for workflow in workflows:
            if not self.schedules.should_run(workflow.trigger_config, now, workflow.last_run_at):
                continue
            self._dispatch(workflow, self.schedules.build_event(workflow, now))
            fired.append(workflow.id)

        logger.info("Schedule tick processed", candidates=len(workflows), fired=len(fired))
        return fired

    # ─── Manual ───────────────────────────────────────────────

    async def run_manual(
        self,
        workflow_id: str,
        organization_id: str,
        user_id: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> RunRecord:
        """Test-run a workflow from the builder and wait for the result.

        Allowed regardless of the workflow's active state.
        """
        event = TriggerEvent.manual(workflow_id, organization_id, user_id=user_id, data=data)
        return await self.engine.run_workflow(
            workflow_id,
            event,
            organization_id=organization_id,
            require_active=False,
        )

    def get_supported_types(self) -> list[dict[str, str]]:
        """Get list of supported trigger types."""
        return [
            {"type": t, "name": t.replace("_", " ").title()}
            for t in self._resolvers
        ]
