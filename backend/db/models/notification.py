"""In-app / push notification record."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Notification(BaseModel):
    """A notification addressed to one user.

    Attributes:
        channel: 'in_app' or 'push'; push rows are picked up by the device gateway
        type: Free-form category shown by the client (info, warning, ...)
        payload: Extra data for the client
    """

    __tablename__ = "notifications"

    organization_id: Mapped[str] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel: Mapped[str] = mapped_column(default="in_app")
    type: Mapped[str] = mapped_column(default="info")
    title: Mapped[str] = mapped_column(nullable=False)
    message: Mapped[str] = mapped_column(nullable=False)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(default=False)
