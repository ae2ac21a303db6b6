"""Workflow schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkflowStepCreate(BaseModel):
    """Request to create a workflow step."""

    step_order: int = Field(ge=0, description="Step execution order")
    step_type: Literal["action", "condition", "loop"] = Field(default="action", description="Action, condition or loop step")
    action_type: Optional[str] = Field(default=None, description="Action to perform (e.g. 'send_email')")
    name: str = Field(default="", description="Human-readable step name")
    action_config: Dict[str, Any] = Field(default_factory=dict, description="Action parameters; may use {{ }} templates")
    condition: Optional[Dict[str, Any]] = Field(default=None, description="Condition tree for condition steps")
    else_goto_step: Optional[int] = Field(default=None, ge=0, description="step_order to jump to when the condition is false")
    is_required: bool = Field(default=True, description="Whether a failure aborts the run")
    timeout_seconds: Optional[int] = Field(default=None, ge=1, le=3600, description="Step timeout in seconds")


class WorkflowCreate(BaseModel):
    """Request to create a workflow."""

    name: str = Field(min_length=1, max_length=255, description="Workflow name")
    description: str = Field(default="", description="Workflow description")
    trigger_type: Literal["event", "schedule", "webhook", "manual"] = Field(description="What starts a run")
    trigger_config: Dict[str, Any] = Field(default_factory=dict, description="Trigger parameters")
    steps: List[WorkflowStepCreate] = Field(default_factory=list, description="Ordered steps")


class WorkflowUpdate(BaseModel):
    """Request to update a workflow. ``steps``, when given, replaces all steps."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255, description="Workflow name")
    description: Optional[str] = Field(default=None, description="Workflow description")
    trigger_type: Optional[Literal["event", "schedule", "webhook", "manual"]] = None
    trigger_config: Optional[Dict[str, Any]] = None
    steps: Optional[List[WorkflowStepCreate]] = None


class WorkflowStepResponse(BaseModel):
    """Workflow step information."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    step_order: int
    step_type: str
    action_type: Optional[str] = None
    name: str = ""
    action_config: Optional[Dict[str, Any]] = None
    condition: Optional[Dict[str, Any]] = None
    else_goto_step: Optional[int] = None
    is_required: bool = True
    timeout_seconds: Optional[int] = None


class WorkflowResponse(BaseModel):
    """Workflow information response."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Workflow ID")
    organization_id: str
    name: str = Field(description="Workflow name")
    description: str = Field(description="Workflow description")
    trigger_type: str
    trigger_config: Optional[Dict[str, Any]] = None
    is_active: bool = Field(description="Whether triggers may start runs")
    created_by_id: Optional[str] = Field(default=None, description="User ID who created the workflow")
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    steps: List[WorkflowStepResponse] = Field(default_factory=list)
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")


class WorkflowListResponse(BaseModel):
    """Paginated list of workflows."""

    data: List[WorkflowResponse]
    total: int
    limit: int
    offset: int


class TestRunRequest(BaseModel):
    """Sample trigger data for a manual test run."""

    trigger_data: Dict[str, Any] = Field(default_factory=dict)
