"""Workflow model for the Flowline workflow engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import TriggerType
from db.base import BaseModel


class Workflow(BaseModel):
    """Workflow model representing a user-defined automation.

    Attributes:
        id: Unique identifier (UUID string)
        organization_id: Foreign key to Organization
        name: Workflow name
        description: Workflow description
        trigger_type: What starts a run (event, schedule, webhook, manual)
        trigger_config: Trigger parameters; shape depends on trigger_type
        is_active: Whether triggers may start new runs
        created_by_id: Foreign key to User who created the workflow
        last_run_at: When the most recent run started
        run_count: Number of runs started so far
    """

    __tablename__ = "workflows"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    trigger_type: Mapped[str] = mapped_column(
        default=TriggerType.MANUAL.value, index=True
    )
    trigger_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=False, index=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    run_count: Mapped[int] = mapped_column(default=0)

    # Relationships
    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="workflows", lazy="noload"
    )
    steps: Mapped[list["WorkflowStep"]] = relationship(
        "WorkflowStep",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.step_order",
        lazy="selectin",
    )
    runs: Mapped[list["WorkflowRun"]] = relationship(
        "WorkflowRun",
        back_populates="workflow",
        lazy="noload",
    )
