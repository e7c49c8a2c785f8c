"""
Message repository for database operations.
Handles storage and status updates of direct user messages.
"""
from typing import List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.models.message import MessageStatusType, UserMessage
from chat_relay.repositories.base import BaseRepository


class UserMessageRepository(BaseRepository[UserMessage]):
    """Repository for direct message database operations."""

    def __init__(self, db: AsyncSession):
        """Initialize message repository."""
        super().__init__(UserMessage, db)

    async def create_message(self, sender_id: int, receiver_id: int, content: str) -> UserMessage:
        """Store a new message with status ``sent``."""
        return await self.create(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            status=MessageStatusType.SENT,
        )

    async def get_conversation(
        self,
        user_id: int,
        partner_id: int,
        limit: int = 50,
        before_id: Optional[int] = None,
    ) -> List[UserMessage]:
        """
        Get messages exchanged between two users.

        Args:
            user_id: One participant
            partner_id: The other participant
            limit: Maximum number of messages
            before_id: Only return messages older than this id (pagination)

        Returns:
            Messages in chronological order
        """
        query = select(UserMessage).where(
            or_(
                and_(UserMessage.sender_id == user_id, UserMessage.receiver_id == partner_id),
                and_(UserMessage.sender_id == partner_id, UserMessage.receiver_id == user_id),
            )
        )
        if before_id is not None:
            query = query.where(UserMessage.id < before_id)

        query = query.order_by(UserMessage.id.desc()).limit(limit)
        result = await self.db.execute(query)
        messages = list(result.scalars().all())
        messages.reverse()
        return messages

    async def get_pending_for_receiver(self, receiver_id: int) -> List[UserMessage]:
        """Messages addressed to ``receiver_id`` that are still only ``sent``."""
        result = await self.db.execute(
            select(UserMessage)
            .where(
                UserMessage.receiver_id == receiver_id,
                UserMessage.status == MessageStatusType.SENT,
            )
            .order_by(UserMessage.id)
        )
        return list(result.scalars().all())

    async def advance_status(self, message: UserMessage, status: MessageStatusType) -> bool:
        """
        Move a message's status forward.

        The change is a single conditional UPDATE, so a concurrent writer
        that already moved the row further wins and this call is a no-op.
        ``message.status`` is synced with the stored value either way.

        Returns:
            False if the update would regress or repeat the status
        """
        result = await self.db.execute(
            update(UserMessage)
            .where(
                UserMessage.id == message.id,
                UserMessage.status.in_(status.predecessors()),
            )
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.refresh(message, attribute_names=["status"])
            return False

        set_committed_value(message, "status", status)
        return True
