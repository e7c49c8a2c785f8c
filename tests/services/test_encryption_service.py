"""
Unit tests for EncryptionService key storage and public key caching.
"""
import pytest

from chat_relay.services.encryption_service import (
    ConversationKeyExistsError,
    EncryptionService,
    public_key_cache_key,
)


@pytest.fixture
def cache(mocker):
    cache = mocker.AsyncMock()
    cache.get.return_value = None
    return cache


@pytest.mark.asyncio
class TestPublicKeyCaching:

    async def test_fetched_key_is_cached(self, database, cache):
        async with database.session() as db:
            service = EncryptionService(db, cache=cache, public_key_ttl=30)
            await service.publish_public_key(1, "pk-1")

            assert await service.get_public_key(1) == "pk-1"

        cache.set.assert_awaited_once_with(public_key_cache_key(1), "pk-1", ttl=30)

    async def test_cached_key_skips_storage(self, database, cache):
        cache.get.return_value = "from-cache"

        async with database.session() as db:
            service = EncryptionService(db, cache=cache)
            assert await service.get_public_key(1) == "from-cache"

    async def test_publish_invalidates_cache(self, database, cache):
        async with database.session() as db:
            await EncryptionService(db, cache=cache).publish_public_key(1, "pk-2")

        cache.delete.assert_awaited_once_with(public_key_cache_key(1))

    async def test_unknown_user_is_not_cached(self, database, cache):
        async with database.session() as db:
            assert await EncryptionService(db, cache=cache).get_public_key(5) is None

        cache.set.assert_not_awaited()


@pytest.mark.asyncio
class TestConversationKeys:

    async def test_initiate_and_status(self, database):
        async with database.session() as db:
            service = EncryptionService(db)
            await service.publish_public_key(2, "pk-2")
            assert await service.get_encryption_status(1, 2) == {"is_encrypted": False, "can_enable": True}

            await service.initiate_encryption(1, 2, "for-1", "for-2", public_key="pk-1")

            assert await service.get_conversation_key(1, 2) == "for-1"
            assert await service.get_conversation_key(2, 1) == "for-2"
            assert await service.get_encryption_status(2, 1) == {"is_encrypted": True, "can_enable": True}
            assert await service.get_public_key(1) == "pk-1"

    async def test_keys_are_never_replaced(self, database):
        async with database.session() as db:
            service = EncryptionService(db)
            await service.initiate_encryption(1, 2, "for-1", "for-2")

            with pytest.raises(ConversationKeyExistsError):
                await service.initiate_encryption(2, 1, "new-2", "new-1")

            assert await service.get_conversation_key(1, 2) == "for-1"
