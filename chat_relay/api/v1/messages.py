"""
User message API routes.

REST fallback for sending direct messages and the conversation history.
Messages sent here follow the same delivery path as socket messages.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chat_relay.dependencies import get_current_user, get_transport
from chat_relay.schemas.message import UserMessageCreate, UserMessageListResponse, UserMessageResponse
from chat_relay.services.message_transport import MessageTransportService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=UserMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
    description="Store a direct message and push it to both participants.",
)
async def send_message(
    message_data: UserMessageCreate,
    current_user: dict = Depends(get_current_user),
    transport: MessageTransportService = Depends(get_transport),
):
    """Send a message without a socket connection."""
    try:
        return await transport.deliver_message(
            sender_id=current_user["id"],
            receiver_id=message_data.receiver_id,
            content=message_data.content,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get(
    "/{partner_id}",
    response_model=UserMessageListResponse,
    summary="Get conversation history",
    description="Messages exchanged with a partner, oldest first, with cursor pagination.",
)
async def get_conversation(
    partner_id: int,
    limit: int = Query(50, ge=1, le=100, description="Number of messages to return"),
    before_id: Optional[int] = Query(None, alias="beforeId", description="Return messages older than this id"),
    current_user: dict = Depends(get_current_user),
    transport: MessageTransportService = Depends(get_transport),
):
    """Get the messages between the current user and ``partner_id``."""
    messages = await transport.get_history(current_user["id"], partner_id, limit=limit + 1, before_id=before_id)
    has_more = len(messages) > limit
    if has_more:
        messages = messages[1:]
    return {"messages": messages, "hasMore": has_more}
