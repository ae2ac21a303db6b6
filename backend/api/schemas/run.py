"""Workflow run, webhook and event schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StepResultResponse(BaseModel):
    """Outcome of one step within a run."""

    step_id: str
    step_order: int
    action_type: Optional[str] = None
    status: str
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class RunResponse(BaseModel):
    """A workflow run with its step results."""

    id: str
    workflow_id: str
    organization_id: str
    trigger_type: str
    status: str
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    triggered_by_id: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    steps: List[StepResultResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, run) -> "RunResponse":
        """Build from a workflow.store.RunRecord."""
        return cls(
            id=run.id,
            workflow_id=run.workflow_id,
            organization_id=run.organization_id,
            trigger_type=run.trigger_type,
            status=run.status.value,
            trigger_data=run.trigger_data or {},
            error_message=run.error_message,
            triggered_by_id=run.triggered_by_id,
            started_at=run.started_at,
            ended_at=run.ended_at,
            steps=[
                StepResultResponse(
                    step_id=s.step_id,
                    step_order=s.step_order,
                    action_type=s.action_type,
                    status=s.status.value,
                    output=s.output,
                    error=s.error,
                    started_at=s.started_at,
                    ended_at=s.ended_at,
                )
                for s in run.steps
            ],
        )


class RunListResponse(BaseModel):
    """Paginated run history."""

    data: List[RunResponse]
    total: int
    limit: int
    offset: int


class WebhookAcceptedResponse(BaseModel):
    """Response to an accepted webhook call."""

    success: bool = True
    message: str = "Workflow triggered"
    workflow_id: str
    workflow_name: str
    triggered_at: datetime


class WebhookInfoResponse(BaseModel):
    """How to call a workflow's webhook."""

    workflow_id: str
    name: str
    is_active: bool
    trigger_type: str
    endpoint: str
    method: str = "POST"
    signature_required: bool
    headers: Dict[str, str]


class EventEmitRequest(BaseModel):
    """An internal event raised for the caller's organization."""

    event_type: str = Field(min_length=1)
    entity_type: str = Field(min_length=1)
    entity_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class EventEmitResponse(BaseModel):
    matched: int
    workflow_ids: List[str] = Field(default_factory=list)
