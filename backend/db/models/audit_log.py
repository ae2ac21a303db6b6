"""AuditLog model for the Flowline workflow engine."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import AuditAction
from db.base import BaseModel


class AuditLog(BaseModel):
    """AuditLog model for tracking workflow management actions.

    Attributes:
        organization_id: Foreign key to Organization
        user_id: User who performed the action
        resource_type: Type of resource affected (e.g., 'workflow')
        resource_id: ID of the resource affected
        action: create, update, delete, activate, deactivate, execute
        new_values: JSON object with the values written
    """

    __tablename__ = "audit_logs"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    resource_type: Mapped[str] = mapped_column(nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(
        default=AuditAction.UPDATE.value, index=True
    )
    new_values: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
