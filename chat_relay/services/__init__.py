"""
Service layer exports.
Provides business logic for the application.
"""
from chat_relay.services.notification_service import NotificationSocketService
from chat_relay.services.message_transport import MessageTransportService
from chat_relay.services.encryption_service import EncryptionService

__all__ = [
    "NotificationSocketService",
    "MessageTransportService",
    "EncryptionService",
]
