"""
Repository layer exports.
Provides database access layer for the application.
"""
from chat_relay.repositories.base import BaseRepository
from chat_relay.repositories.message_repo import UserMessageRepository
from chat_relay.repositories.encryption_repo import (
    PublicKeyRepository,
    ConversationKeyRepository
)
from chat_relay.repositories.notification_repo import NotificationRepository

__all__ = [
    "BaseRepository",
    "UserMessageRepository",
    "PublicKeyRepository",
    "ConversationKeyRepository",
    "NotificationRepository",
]
