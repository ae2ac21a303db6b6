"""Contact model (CRM)."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Contact(BaseModel):
    """A person at a company.

    Attributes:
        organization_id: Owning tenant
        company_id: Company the contact works for
        first_name / last_name / email / phone / title: Profile fields
        custom_fields: Free-form fields written by workflows
    """

    __tablename__ = "contacts"

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
    first_name: Mapped[str] = mapped_column(nullable=False)
    last_name: Mapped[str] = mapped_column(nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(nullable=True)
    title: Mapped[Optional[str]] = mapped_column(nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(nullable=True)
    custom_fields: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
