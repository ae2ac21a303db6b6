"""Persistence interface used by the workflow engine.

The engine reads workflow definitions and writes run records only through
WorkflowStore, so it can run against the SQL store in production and an
in-memory store in tests. Tenant isolation is the store's job: every
lookup that takes an ``organization_id`` must ignore other tenants' rows.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from core.constants import RunStatus, StepStatus


@dataclass
class StepDefinition:
    """One configured step of a workflow."""
    id: str
    step_order: int
    action_type: Optional[str] = None
    step_type: str = "action"
    name: str = ""
    action_config: dict[str, Any] = field(default_factory=dict)
    condition: Optional[dict[str, Any]] = None
    else_goto_step: Optional[int] = None
    is_required: bool = True
    timeout_seconds: Optional[float] = None


@dataclass
class WorkflowDefinition:
    """A workflow with its steps, as the engine sees it."""
    id: str
    organization_id: str
    name: str
    trigger_type: str
    trigger_config: dict[str, Any] = field(default_factory=dict)
    is_active: bool = False
    last_run_at: Optional[datetime] = None
    steps: list[StepDefinition] = field(default_factory=list)


@dataclass
class StepResult:
    """Recorded outcome of one step in a run."""
    step_id: str
    step_order: int
    status: StepStatus
    action_type: Optional[str] = None
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


@dataclass
class RunRecord:
    """A workflow run and its step results."""
    id: str
    workflow_id: str
    organization_id: str
    trigger_type: str
    status: RunStatus
    started_at: datetime
    trigger_data: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    triggered_by_id: Optional[str] = None
    ended_at: Optional[datetime] = None
    steps: list[StepResult] = field(default_factory=list)


class WorkflowStore(ABC):
    """Capability interface over workflow definitions and run history."""

    @abstractmethod
    async def get_workflow(
        self, workflow_id: str, organization_id: Optional[str] = None
    ) -> Optional[WorkflowDefinition]:
        """Fetch a workflow with its steps; None when absent or owned by another tenant."""

    @abstractmethod
    async def list_active_workflows(
        self, trigger_type: str, organization_id: Optional[str] = None
    ) -> list[WorkflowDefinition]:
        """Active workflows of a trigger type, optionally limited to one tenant."""

    @abstractmethod
    async def create_run(
        self,
        workflow: WorkflowDefinition,
        trigger_type: str,
        trigger_data: dict[str, Any],
        context: dict[str, Any],
        started_at: datetime,
        triggered_by_id: Optional[str] = None,
    ) -> RunRecord:
        """Create a run in ``pending``."""

    @abstractmethod
    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        error_message: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> None:
        """Move a run to a new status."""

    @abstractmethod
    async def append_step_result(self, run_id: str, result: StepResult) -> None:
        """Persist one step outcome."""

    @abstractmethod
    async def list_runs(
        self,
        workflow_id: str,
        organization_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[RunRecord], int]:
        """Runs of a workflow, newest first, with the unpaginated total."""

    @abstractmethod
    async def get_run(self, run_id: str, organization_id: str) -> Optional[RunRecord]:
        """One run with its step results."""

    @abstractmethod
    async def record_workflow_run(self, workflow_id: str, started_at: datetime) -> None:
        """Bump the workflow's run counter and last-run timestamp."""
