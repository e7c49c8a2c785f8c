"""
SQLAlchemy models for the chat relay.

All models must be imported here so Base.metadata knows every table.
"""

# Import Base first
from chat_relay.models.base import Base, TimestampMixin

from chat_relay.models.message import UserMessage, MessageStatusType
from chat_relay.models.encryption import UserPublicKey, ConversationKey
from chat_relay.models.notification import Notification

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Messages
    "UserMessage",
    "MessageStatusType",
    # Encryption
    "UserPublicKey",
    "ConversationKey",
    # Notifications
    "Notification",
]
