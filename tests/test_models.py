"""
Tests for the database models: status ordering, serialization and the
constraints the transport relies on.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from chat_relay.models import ConversationKey, MessageStatusType, Notification, UserMessage, UserPublicKey


class TestMessageStatusType:

    def test_declared_in_delivery_order(self):
        assert [s.rank for s in MessageStatusType] == [0, 1, 2]

    def test_only_forward_transitions(self):
        sent, delivered, read = MessageStatusType.SENT, MessageStatusType.DELIVERED, MessageStatusType.READ

        assert sent.can_advance_to(delivered)
        assert sent.can_advance_to(read)
        assert delivered.can_advance_to(read)
        assert not read.can_advance_to(delivered)
        assert not delivered.can_advance_to(delivered)

    def test_predecessors(self):
        assert MessageStatusType.SENT.predecessors() == []
        assert MessageStatusType.DELIVERED.predecessors() == [MessageStatusType.SENT]
        assert MessageStatusType.READ.predecessors() == [MessageStatusType.SENT, MessageStatusType.DELIVERED]


@pytest.mark.asyncio
class TestPersistence:
    """Round trips through the test database."""

    async def test_message_defaults_and_serialization(self, database):
        async with database.session() as session:
            message = UserMessage(sender_id=1, receiver_id=2, content="e2ee:v1:AAAA")
            session.add(message)
            await session.flush()
            message_id = message.id

        async with database.session() as session:
            stored = await session.get(UserMessage, message_id)
            data = stored.to_dict()

        assert data["status"] == "sent"
        assert data["senderId"] == 1
        assert data["receiverId"] == 2
        assert data["content"] == "e2ee:v1:AAAA"
        assert data["timestamp"].endswith("Z")

    async def test_conversation_key_pair_is_unique(self, database):
        async with database.session() as session:
            session.add(ConversationKey(owner_id=1, partner_id=2, wrapped_key="a", initiator_id=1))

        with pytest.raises(IntegrityError):
            async with database.session() as session:
                session.add(ConversationKey(owner_id=1, partner_id=2, wrapped_key="b", initiator_id=2))

        async with database.session() as session:
            rows = (await session.execute(select(ConversationKey))).scalars().all()
        assert [row.wrapped_key for row in rows] == ["a"]

    async def test_public_key_is_keyed_by_user(self, database):
        async with database.session() as session:
            session.add(UserPublicKey(user_id=7, public_key="pk"))

        async with database.session() as session:
            stored = await session.get(UserPublicKey, 7)

        assert stored.public_key == "pk"
        assert stored.created_at is not None

    async def test_notification_serialization(self, database):
        async with database.session() as session:
            notification = Notification(user_id=3, type="alert", title="Heads up", message="Maintenance at 5")
            session.add(notification)
            await session.flush()
            await session.refresh(notification)
            data = notification.to_dict()

        assert data["type"] == "alert"
        assert data["userId"] == 3
        assert data["read"] is False
        assert data["createdAt"].endswith("Z")
