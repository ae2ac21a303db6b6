"""Task model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import TaskPriority, TaskStatus
from db.base import BaseModel


class Task(BaseModel):
    """A unit of work inside a project."""

    __tablename__ = "tasks"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(default=TaskStatus.TODO.value, index=True)
    priority: Mapped[str] = mapped_column(default=TaskPriority.MEDIUM.value)
    assignee_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
