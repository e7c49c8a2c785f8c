"""
Stored notification model.

Notifications are persisted before fan-out so a client can ask for a
refresh of the most recent ones after reconnecting.
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.models.base import Base
from chat_relay.utils.datetime_utils import to_iso_utc


class Notification(Base):
    """Notification addressed to a single user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="info",
        doc="Notification class, e.g. message, info, alert, critical"
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        """Serialize for socket delivery."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": bool(self.read),
            "createdAt": to_iso_utc(self.created_at),
        }
