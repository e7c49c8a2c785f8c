"""
Encryption API routes for E2EE key management.

Provides endpoints for publishing and fetching public keys and for
exchanging wrapped conversation keys between two users.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_relay.core.database import get_db
from chat_relay.core.rate_limit import limiter, user_or_address_key
from chat_relay.dependencies import get_current_user
from chat_relay.schemas.encryption import (
    ConversationKeyResponse,
    EncryptionStatusResponse,
    InitiateEncryptionRequest,
    InitiateEncryptionResponse,
    PublicKeyResponse,
    PublicKeyUpload,
)
from chat_relay.services.encryption_service import ConversationKeyExistsError, EncryptionService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_encryption_service(request: Request, db: AsyncSession = Depends(get_db)) -> EncryptionService:
    return EncryptionService(
        db,
        cache=request.app.state.cache,
        public_key_ttl=request.app.state.settings.cache_public_key_ttl,
    )


@router.post(
    "/keys",
    summary="Publish public key",
    description="Store or replace the current user's public key.",
)
@limiter.limit("10/minute", key_func=user_or_address_key)
async def publish_public_key(
    request: Request,
    body: PublicKeyUpload,
    current_user: dict = Depends(get_current_user),
    service: EncryptionService = Depends(get_encryption_service),
):
    """Publish the current user's public key."""
    await service.publish_public_key(current_user["id"], body.public_key)
    return {"success": True}


@router.get(
    "/keys/{user_id}",
    response_model=PublicKeyResponse,
    summary="Fetch public key",
)
async def get_public_key(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    service: EncryptionService = Depends(get_encryption_service),
):
    """Fetch a user's published public key."""
    public_key = await service.get_public_key(user_id)
    if public_key is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Public key not found for this user",
        )
    return PublicKeyResponse(user_id=user_id, public_key=public_key)


@router.get(
    "/check-encryption",
    response_model=EncryptionStatusResponse,
    summary="Check conversation encryption",
)
async def check_encryption(
    partner_id: int = Query(..., alias="partnerId", gt=0),
    current_user: dict = Depends(get_current_user),
    service: EncryptionService = Depends(get_encryption_service),
):
    """Whether the conversation with ``partnerId`` is encrypted."""
    result = await service.get_encryption_status(current_user["id"], partner_id)
    return EncryptionStatusResponse(**result)


@router.get(
    "/key",
    response_model=ConversationKeyResponse,
    summary="Fetch conversation key",
    description="The conversation key wrapped with the current user's public key.",
)
async def get_conversation_key(
    partner_id: int = Query(..., alias="partnerId", gt=0),
    current_user: dict = Depends(get_current_user),
    service: EncryptionService = Depends(get_encryption_service),
):
    """Fetch the caller's wrapped copy of the conversation key."""
    wrapped = await service.get_conversation_key(current_user["id"], partner_id)
    if wrapped is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Encryption key not found for this conversation",
        )
    return ConversationKeyResponse(encrypted_key=wrapped)


@router.post(
    "/initiate-encryption",
    response_model=InitiateEncryptionResponse,
    summary="Enable conversation encryption",
    description="Store the new conversation key wrapped for both participants.",
)
@limiter.limit("10/minute", key_func=user_or_address_key)
async def initiate_encryption(
    request: Request,
    body: InitiateEncryptionRequest,
    current_user: dict = Depends(get_current_user),
    service: EncryptionService = Depends(get_encryption_service),
    db: AsyncSession = Depends(get_db),
):
    """Enable encryption for the conversation with ``partnerId``."""
    if body.partner_id == current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot enable encryption with yourself",
        )

    try:
        await service.initiate_encryption(
            user_id=current_user["id"],
            partner_id=body.partner_id,
            key_for_self=body.encrypted_key_for_self,
            key_for_partner=body.encrypted_key_for_partner,
            public_key=body.public_key,
        )
        await db.flush()
    except (ConversationKeyExistsError, IntegrityError):
        logger.info(f"[ENCRYPTION] Conversation {current_user['id']}<->{body.partner_id} already has a key")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Encryption is already enabled for this conversation",
        )

    return InitiateEncryptionResponse(success=True, is_encrypted=True)
