"""Activity feed entry."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Activity(BaseModel):
    """An entry in a company's activity timeline."""

    __tablename__ = "activities"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    entity_type: Mapped[str] = mapped_column(nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    event_type: Mapped[str] = mapped_column(nullable=False, index=True)
    message: Mapped[str] = mapped_column(nullable=False)
    source: Mapped[str] = mapped_column(default="workflow")
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
