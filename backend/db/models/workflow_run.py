"""WorkflowRun and WorkflowRunStep models for the Flowline workflow engine."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import RunStatus, TriggerType
from db.base import BaseModel


class WorkflowRun(BaseModel):
    """One triggered execution of a workflow.

    Attributes:
        id: Unique identifier (UUID string)
        organization_id: Foreign key to Organization
        workflow_id: Foreign key to Workflow
        trigger_type: What started the run
        status: pending, running, succeeded, failed, partially_failed
        trigger_data: Canonical trigger payload that caused the run
        context: Initial run context (entity snapshots, trigger metadata)
        error_message: Why the run failed, if it did
        triggered_by_id: User behind the trigger, when known
        started_at: When the run record was created
        ended_at: When the run reached a terminal status
    """

    __tablename__ = "workflow_runs"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    trigger_type: Mapped[str] = mapped_column(
        default=TriggerType.MANUAL.value, index=True
    )
    status: Mapped[str] = mapped_column(default=RunStatus.PENDING.value, index=True)
    trigger_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(nullable=True)
    triggered_by_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="runs", lazy="noload"
    )
    steps: Mapped[list["WorkflowRunStep"]] = relationship(
        "WorkflowRunStep",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="WorkflowRunStep.step_order",
        lazy="selectin",
    )


class WorkflowRunStep(BaseModel):
    """Per-step outcome recorded for a run.

    Attributes:
        run_id: Foreign key to WorkflowRun
        step_id: The WorkflowStep this result belongs to
        step_order: Copied from the step so results sort without a join
        action_type: Copied from the step for history views
        status: succeeded, failed or skipped
        output: Data produced by the step, visible to later steps
        error: Error message when the step failed
    """

    __tablename__ = "workflow_run_steps"

    run_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id: Mapped[str] = mapped_column(nullable=False, index=True)
    step_order: Mapped[int] = mapped_column(nullable=False)
    action_type: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(nullable=False)
    output: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    run: Mapped["WorkflowRun"] = relationship(
        "WorkflowRun", back_populates="steps", lazy="noload"
    )
