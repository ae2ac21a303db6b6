"""Run context shared by the engine and the step executors."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from workflow.templating import get_path

# Trigger-data keys copied to the top level of the template namespace
ENTITY_SNAPSHOT_KEYS = ("contact", "company", "task", "project", "opportunity")


@dataclass
class StepResources:
    """Collaborators handed to step executors.

    Every field is injectable so tests can swap in fakes.

    Attributes:
        session_factory: async_sessionmaker for tenant-scoped writes
        settings: Application settings
        ai: Claude client (ask / classify / summarize)
        mailer: Email channel (send)
        slack: Slack Web API client (post_message / create_channel)
        http_client_factory: Returns an httpx.AsyncClient for outbound webhooks
    """

    session_factory: Optional[Callable] = None
    settings: Any = None
    ai: Any = None
    mailer: Any = None
    slack: Any = None
    http_client_factory: Optional[Callable] = None


@dataclass
class RunContext:
    """State visible to the steps of one run.

    ``steps`` maps step id (and the ``step_<order>`` alias) to that step's
    output, filled in as steps complete.
    """

    run_id: str
    workflow_id: str
    organization_id: str
    workflow_name: str = ""
    trigger_type: str = "manual"
    trigger_data: dict[str, Any] = field(default_factory=dict)
    event_type: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    triggered_by: Optional[str] = None
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    steps: dict[str, Any] = field(default_factory=dict)
    resources: StepResources = field(default_factory=StepResources)

    def record_output(self, step_id: str, step_order: int, output: Any) -> None:
        """Make a step's output addressable by later steps."""
        self.steps[step_id] = output
        self.steps[f"step_{step_order}"] = output

    def namespace(self) -> dict[str, Any]:
        """Template/condition namespace for this run."""
        ns: dict[str, Any] = {
            "trigger": {
                "type": self.trigger_type,
                "event_type": self.event_type,
                "entity_type": self.entity_type,
                "entity_id": self.entity_id,
                "data": self.trigger_data,
            },
            "steps": self.steps,
            "workflow": {"id": self.workflow_id, "name": self.workflow_name},
            "organization_id": self.organization_id,
            "triggered_by": self.triggered_by,
            "triggered_at": self.triggered_at.isoformat(),
        }
        for key in ENTITY_SNAPSHOT_KEYS:
            if isinstance(self.trigger_data.get(key), dict):
                ns[key] = self.trigger_data[key]
        return ns

    def resolve(self, path: str, default: Any = None) -> Any:
        """Resolve a dotted path (e.g. ``trigger.data.task.id``) against the namespace."""
        return get_path(self.namespace(), path, default)

    def snapshot(self) -> dict[str, Any]:
        """Initial context persisted with the run record."""
        ns = self.namespace()
        ns.pop("steps")
        return ns
