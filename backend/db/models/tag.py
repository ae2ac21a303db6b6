"""Tag model (CRM)."""

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Tag(BaseModel):
    """A label attached to a contact or a company."""

    __tablename__ = "tags"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "name", name="uq_tags_entity_name"),
    )

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(nullable=False)  # contact | company
    entity_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False)
