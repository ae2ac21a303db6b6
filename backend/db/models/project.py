"""Project and ProjectTemplate models."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Project(BaseModel):
    """A delivery project, optionally created from an opportunity or template."""

    __tablename__ = "projects"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    opportunity_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    template_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(default="active")


class ProjectTemplate(BaseModel):
    """Reusable project skeleton.

    `tasks` is a list of {"title", "description", "priority", "due_date_offset_days"}.
    Templates with no organization are shared by every tenant.
    """

    __tablename__ = "project_templates"

    organization_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(nullable=True)
    tasks: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
