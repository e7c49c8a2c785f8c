"""
Encryption key repository for database operations.
Handles published public keys and wrapped conversation keys.
"""
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.models.encryption import ConversationKey, UserPublicKey
from chat_relay.repositories.base import BaseRepository


class PublicKeyRepository(BaseRepository[UserPublicKey]):
    """Repository for user public keys."""

    def __init__(self, db: AsyncSession):
        super().__init__(UserPublicKey, db)

    async def upsert(self, user_id: int, public_key: str) -> UserPublicKey:
        """Insert or replace the public key of ``user_id``."""
        record = await self.get(user_id)
        if record is None:
            return await self.create(user_id=user_id, public_key=public_key)

        record.public_key = public_key
        await self.db.flush()
        return record


class ConversationKeyRepository(BaseRepository[ConversationKey]):
    """Repository for wrapped conversation keys."""

    def __init__(self, db: AsyncSession):
        super().__init__(ConversationKey, db)

    async def get_for_owner(self, owner_id: int, partner_id: int) -> Optional[ConversationKey]:
        """The copy of the pair's key wrapped for ``owner_id``."""
        result = await self.db.execute(
            select(ConversationKey).where(
                ConversationKey.owner_id == owner_id,
                ConversationKey.partner_id == partner_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_pair(self, user_id: int, partner_id: int) -> List[ConversationKey]:
        """Both wrapped copies for a user pair (empty if none exist)."""
        result = await self.db.execute(
            select(ConversationKey).where(
                or_(
                    (ConversationKey.owner_id == user_id) & (ConversationKey.partner_id == partner_id),
                    (ConversationKey.owner_id == partner_id) & (ConversationKey.partner_id == user_id),
                )
            )
        )
        return list(result.scalars().all())

    async def create_pair(
        self,
        initiator_id: int,
        partner_id: int,
        key_for_initiator: str,
        key_for_partner: str,
    ) -> List[ConversationKey]:
        """Store the two wrapped copies of a new conversation key."""
        rows = [
            ConversationKey(
                owner_id=initiator_id,
                partner_id=partner_id,
                wrapped_key=key_for_initiator,
                initiator_id=initiator_id,
            ),
            ConversationKey(
                owner_id=partner_id,
                partner_id=initiator_id,
                wrapped_key=key_for_partner,
                initiator_id=initiator_id,
            ),
        ]
        self.db.add_all(rows)
        await self.db.flush()
        return rows
