"""
Encryption service for E2EE key management.

Stores published public keys and wrapped conversation keys. The server
never sees private keys or unwrapped conversation keys; it only relays
what the clients produced.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.core.cache import RedisCache
from chat_relay.repositories.encryption_repo import ConversationKeyRepository, PublicKeyRepository

logger = logging.getLogger(__name__)


class ConversationKeyExistsError(Exception):
    """Raised when a user pair already has a conversation key."""


def public_key_cache_key(user_id: int) -> str:
    return f"publickey:{user_id}"


class EncryptionService:
    """Service for E2EE key management operations."""

    def __init__(self, db: AsyncSession, cache: Optional[RedisCache] = None, public_key_ttl: int = 600):
        self.db = db
        self.cache = cache
        self.public_key_ttl = public_key_ttl
        self.public_keys = PublicKeyRepository(db)
        self.conversation_keys = ConversationKeyRepository(db)

    async def publish_public_key(self, user_id: int, public_key: str) -> None:
        """
        Store or replace a user's public key.

        Invalidates the cached copy so the next fetch sees the new key.
        """
        await self.public_keys.upsert(user_id, public_key)
        if self.cache is not None:
            await self.cache.delete(public_key_cache_key(user_id))
        logger.info(f"[ENCRYPTION] Public key published for user {user_id}")

    async def get_public_key(self, user_id: int) -> Optional[str]:
        """
        Get a user's public key, cache first.

        Returns:
            Base64 SPKI key, or None if the user has not published one
        """
        cache_key = public_key_cache_key(user_id)
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached:
                return cached

        record = await self.public_keys.get(user_id)
        if record is None:
            return None

        if self.cache is not None:
            await self.cache.set(cache_key, record.public_key, ttl=self.public_key_ttl)
        return record.public_key

    async def get_encryption_status(self, user_id: int, partner_id: int) -> Dict[str, Any]:
        """
        Encryption state of the conversation between two users.

        Returns:
            ``is_encrypted`` when a key is stored for ``user_id``, and
            ``can_enable`` when the partner has published a public key
        """
        wrapped = await self.conversation_keys.get_for_owner(user_id, partner_id)
        partner_key = await self.get_public_key(partner_id)
        return {
            "is_encrypted": wrapped is not None,
            "can_enable": wrapped is not None or partner_key is not None,
        }

    async def get_conversation_key(self, user_id: int, partner_id: int) -> Optional[str]:
        """The conversation key wrapped for ``user_id``."""
        wrapped = await self.conversation_keys.get_for_owner(user_id, partner_id)
        return wrapped.wrapped_key if wrapped else None

    async def initiate_encryption(
        self,
        user_id: int,
        partner_id: int,
        key_for_self: str,
        key_for_partner: str,
        public_key: Optional[str] = None,
    ) -> None:
        """
        Store a new conversation key for a user pair.

        Conversation keys are never replaced: once a pair has a key,
        further attempts are refused.

        Args:
            user_id: Initiating user
            partner_id: The other participant
            key_for_self: Conversation key wrapped with the initiator's public key
            key_for_partner: Conversation key wrapped with the partner's public key
            public_key: Initiator's public key, stored if none is published yet

        Raises:
            ConversationKeyExistsError: If the pair already has a key
        """
        if await self.conversation_keys.get_pair(user_id, partner_id):
            raise ConversationKeyExistsError(f"Conversation {user_id}<->{partner_id} already has a key")

        if public_key and await self.get_public_key(user_id) is None:
            await self.publish_public_key(user_id, public_key)

        await self.conversation_keys.create_pair(
            initiator_id=user_id,
            partner_id=partner_id,
            key_for_initiator=key_for_self,
            key_for_partner=key_for_partner,
        )
        logger.info(f"[ENCRYPTION] Encryption enabled for {user_id}<->{partner_id}")
