"""
Pydantic schemas for the encryption key endpoints.
Handles validation for public key publishing and conversation key exchange.
"""
from typing import Optional

from pydantic import Field

from chat_relay.schemas.message import CamelModel


class PublicKeyUpload(CamelModel):
    """Request to publish the caller's public key."""

    public_key: str = Field(..., min_length=1, description="Base64-encoded SPKI public key")


class PublicKeyResponse(CamelModel):
    """A user's published public key."""

    user_id: int
    public_key: str


class EncryptionStatusResponse(CamelModel):
    """Whether a conversation is encrypted and whether it could be."""

    is_encrypted: bool
    can_enable: bool


class ConversationKeyResponse(CamelModel):
    """Conversation key wrapped for the caller."""

    encrypted_key: str


class InitiateEncryptionRequest(CamelModel):
    """Request to enable encryption for a user pair."""

    partner_id: int = Field(..., gt=0)
    public_key: Optional[str] = Field(None, description="Caller's public key, published if given")
    encrypted_key_for_self: str = Field(..., min_length=1)
    encrypted_key_for_partner: str = Field(..., min_length=1)


class InitiateEncryptionResponse(CamelModel):
    """Result of enabling encryption."""

    success: bool = True
    is_encrypted: bool = True
