"""
E2EE key storage models.

Stores each user's public key and the per-conversation symmetric key in
wrapped form (one copy per participant, encrypted with that participant's
public key). Private keys and plaintext conversation keys never reach
the server.
"""
from datetime import datetime

from sqlalchemy import DateTime, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from chat_relay.models.base import Base, TimestampMixin


class UserPublicKey(Base, TimestampMixin):
    """A user's published RSA-OAEP public key (base64 SPKI)."""

    __tablename__ = "user_public_keys"

    user_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        doc="User who owns this key",
    )

    public_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Base64-encoded SPKI public key",
    )

    def __repr__(self) -> str:
        return f"<UserPublicKey(user_id={self.user_id})>"


class ConversationKey(Base):
    """
    Wrapped conversation key for one participant of a user pair.

    Each conversation has two rows: (initiator, partner) and
    (partner, initiator), each holding the key wrapped for ``owner_id``.
    Rows are immutable once written.
    """

    __tablename__ = "conversation_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    owner_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        doc="User able to unwrap this copy",
    )

    partner_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="The other participant of the conversation",
    )

    wrapped_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Base64 RSA-OAEP ciphertext of the AES-GCM key",
    )

    initiator_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="User who generated the conversation key",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "partner_id", name="uq_conversation_keys_owner_partner"),
    )

    def __repr__(self) -> str:
        return f"<ConversationKey(owner={self.owner_id}, partner={self.partner_id})>"
