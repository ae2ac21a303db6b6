"""Tenant model."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import PLANS_WITHOUT_WORKFLOWS
from db.base import BaseModel


class Organization(BaseModel):
    """A tenant. Every other row carries an ``organization_id``.

    ``subscription_plan`` decides whether workflow automation is available
    (see ``workflows_enabled``); a deactivated organization loses it too.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    slug: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    subscription_plan: Mapped[str] = mapped_column(nullable=False, default="free")
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    users: Mapped[list["User"]] = relationship(
        "User", back_populates="organization", lazy="noload"
    )
    workflows: Mapped[list["Workflow"]] = relationship(
        "Workflow", back_populates="organization", lazy="noload"
    )

    @property
    def workflows_enabled(self) -> bool:
        return self.is_active and self.subscription_plan not in PLANS_WITHOUT_WORKFLOWS
