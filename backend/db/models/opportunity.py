"""Opportunity model (CRM)."""

from datetime import date
from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Opportunity(BaseModel):
    """A sales opportunity; may be converted into a project once."""

    __tablename__ = "opportunities"

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
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(nullable=True)
    stage: Mapped[str] = mapped_column(default="lead", index=True)
    value: Mapped[Optional[float]] = mapped_column(nullable=True)
    probability: Mapped[Optional[int]] = mapped_column(nullable=True)
    expected_close_date: Mapped[Optional[date]] = mapped_column(nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(nullable=True)
    converted_project_id: Mapped[Optional[str]] = mapped_column(nullable=True)
