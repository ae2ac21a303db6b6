"""WorkflowStep model for the Flowline workflow engine."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import StepType
from db.base import BaseModel


class WorkflowStep(BaseModel):
    """WorkflowStep model representing a single step in a workflow.

    Attributes:
        id: Unique identifier (UUID string)
        workflow_id: Foreign key to Workflow
        step_order: Position in the sequential execution order
        step_type: 'action', 'condition' or 'loop'
        action_type: Action performed by an action step (e.g. 'send_email')
        name: Optional display name
        action_config: Action parameters; may contain {{ }} templates.
            For loop steps: collection_field, max_iterations, item_variable
        condition: Condition tree evaluated by a condition step
        else_goto_step: step_order to jump to when a condition is false
        is_required: Whether a failure aborts the run
        timeout_seconds: Per-step timeout override
    """

    __tablename__ = "workflow_steps"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order: Mapped[int] = mapped_column(nullable=False)
    step_type: Mapped[str] = mapped_column(default=StepType.ACTION.value)
    action_type: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    name: Mapped[str] = mapped_column(nullable=False, default="")
    action_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    condition: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    else_goto_step: Mapped[Optional[int]] = mapped_column(nullable=True)
    is_required: Mapped[bool] = mapped_column(default=True)
    timeout_seconds: Mapped[Optional[int]] = mapped_column(nullable=True)

    # Relationships
    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="steps", lazy="noload"
    )
