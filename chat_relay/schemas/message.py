"""
Pydantic schemas for message requests and responses.
Handles validation for the REST endpoints and the socket events of the
message transport.
"""
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from chat_relay.models.message import MessageStatusType
from chat_relay.utils.datetime_utils import to_iso_utc


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split('_')
    return components[0] + ''.join(x.title() for x in components[1:])


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, still populated by field name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Request Schemas
# ============================================================================

class UserMessageCreate(CamelModel):
    """Payload of ``user_message`` and of POST /api/user-messages."""

    receiver_id: int = Field(..., gt=0, description="User the message is addressed to")
    content: str = Field(..., min_length=1, max_length=10000, description="Plaintext or e2ee:v1 ciphertext")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"receiverId": 2, "content": "Hello there"}
        },
    )


class MessageStatusUpdate(CamelModel):
    """Payload of ``message_status_update``."""

    message_id: int = Field(..., gt=0)
    status: MessageStatusType


class TypingIndicatorEvent(CamelModel):
    """Payload of the ``typing_indicator`` socket event."""

    receiver_id: int = Field(..., gt=0)
    is_typing: bool


class TypingIndicatorRequest(CamelModel):
    """Body of POST /api/typing-indicator."""

    sender_id: int = Field(..., gt=0)
    receiver_id: int = Field(..., gt=0)
    is_typing: bool

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"senderId": 1, "receiverId": 2, "isTyping": True}
        },
    )


# ============================================================================
# Response Schemas
# ============================================================================

class UserMessageResponse(CamelModel):
    """Stored message as returned to clients."""

    id: int
    sender_id: int
    receiver_id: int
    content: str
    status: MessageStatusType
    timestamp: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return to_iso_utc(value)


class UserMessageListResponse(CamelModel):
    """Conversation history page."""

    messages: List[UserMessageResponse]
    has_more: bool = False


class TypingIndicatorResponse(CamelModel):
    """Result of a REST typing indicator."""

    success: bool = True
    notified_clients: int = 0
