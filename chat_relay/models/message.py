"""
User-to-user message model.

Stores direct messages between two users together with their
delivery status (sent -> delivered -> read).
"""
import enum
from datetime import datetime
from typing import List

from sqlalchemy import DateTime, Index, Integer, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.models.base import Base
from chat_relay.utils.datetime_utils import to_iso_utc, utc_now


class MessageStatusType(str, enum.Enum):
    """Enum for message status types, declared in delivery order."""
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        """Position of this status in the delivery order."""
        return _STATUS_ORDER.index(self)

    def can_advance_to(self, other: "MessageStatusType") -> bool:
        """True if moving to ``other`` is a forward transition."""
        return other.rank > self.rank

    def predecessors(self) -> List["MessageStatusType"]:
        """Statuses a message may hold before moving to this one."""
        return _STATUS_ORDER[:self.rank]


_STATUS_ORDER = [MessageStatusType.SENT, MessageStatusType.DELIVERED, MessageStatusType.READ]


class UserMessage(Base):
    """
    Direct message between exactly two users.

    Created on send and afterwards only mutated to advance its status.
    The transport layer never deletes messages.
    """

    __tablename__ = "user_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    sender_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        doc="User who sent the message"
    )

    receiver_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        doc="User the message is addressed to"
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Plaintext or prefixed ciphertext; opaque to the server"
    )

    status: Mapped[MessageStatusType] = mapped_column(
        SQLEnum(MessageStatusType, name="message_status_type", native_enum=False),
        nullable=False,
        default=MessageStatusType.SENT,
        doc="Delivery status, only ever advances"
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        doc="Time the message was stored"
    )

    __table_args__ = (
        Index("idx_user_messages_pair", "sender_id", "receiver_id", "timestamp"),
        Index("idx_user_messages_pending", "receiver_id", "status"),
    )

    def to_dict(self) -> dict:
        """Serialize in the camelCase shape clients expect."""
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "content": self.content,
            "status": self.status.value,
            "timestamp": to_iso_utc(self.timestamp),
        }

    def __repr__(self) -> str:
        return f"<UserMessage(id={self.id}, sender={self.sender_id}, receiver={self.receiver_id}, status={self.status})>"
