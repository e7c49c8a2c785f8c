"""
Notification repository for database operations.
Stores notifications so clients can request a refresh after reconnecting.
"""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.models.notification import Notification
from chat_relay.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Repository for stored notifications."""

    def __init__(self, db: AsyncSession):
        """Initialize notification repository."""
        super().__init__(Notification, db)

    async def create_notification(
        self,
        user_id: int,
        title: str,
        message: str,
        type: str = "info",
    ) -> Notification:
        """Persist a notification for ``user_id``."""
        return await self.create(user_id=user_id, title=title, message=message, type=type)

    async def get_recent(self, user_id: int, limit: int = 20) -> List[Notification]:
        """
        Most recent notifications for a user.

        Args:
            user_id: Recipient
            limit: Maximum number returned

        Returns:
            Notifications, newest first
        """
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
