"""
Pydantic schema exports.
Provides request/response models for API endpoints and socket events.
"""
from chat_relay.schemas.message import (
    CamelModel,
    UserMessageCreate,
    MessageStatusUpdate,
    TypingIndicatorEvent,
    TypingIndicatorRequest,
    UserMessageResponse,
    UserMessageListResponse,
    TypingIndicatorResponse
)
from chat_relay.schemas.encryption import (
    PublicKeyUpload,
    PublicKeyResponse,
    EncryptionStatusResponse,
    ConversationKeyResponse,
    InitiateEncryptionRequest,
    InitiateEncryptionResponse
)
from chat_relay.schemas.notification import (
    PresenceEvent,
    NotificationPayload
)

__all__ = [
    "CamelModel",
    "UserMessageCreate",
    "MessageStatusUpdate",
    "TypingIndicatorEvent",
    "TypingIndicatorRequest",
    "UserMessageResponse",
    "UserMessageListResponse",
    "TypingIndicatorResponse",
    "PublicKeyUpload",
    "PublicKeyResponse",
    "EncryptionStatusResponse",
    "ConversationKeyResponse",
    "InitiateEncryptionRequest",
    "InitiateEncryptionResponse",
    "PresenceEvent",
    "NotificationPayload",
]
