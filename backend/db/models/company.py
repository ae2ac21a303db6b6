"""Company model (CRM)."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Company(BaseModel):
    """A customer or prospect organization tracked in the CRM."""

    __tablename__ = "companies"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False, index=True)
    website: Mapped[Optional[str]] = mapped_column(nullable=True)
    industry: Mapped[Optional[str]] = mapped_column(nullable=True)
