"""User model for the Flowline workflow engine."""

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import UserRole
from db.base import BaseModel


class User(BaseModel):
    """User model representing an organization member.

    Credentials live with the hosted auth provider; this row carries the
    profile and the organization role used for authorization checks.

    Attributes:
        id: Unique identifier (UUID string, same as the auth provider subject)
        organization_id: Foreign key to Organization
        email: User email address (unique)
        first_name: User's first name
        last_name: User's last name
        role: Organization role (admin, pm, member)
        is_active: Whether user account is active
    """

    __tablename__ = "users"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(nullable=False, default="")
    last_name: Mapped[str] = mapped_column(nullable=False, default="")
    role: Mapped[str] = mapped_column(default=UserRole.MEMBER.value, index=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    # Relationships
    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="users", lazy="noload"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
