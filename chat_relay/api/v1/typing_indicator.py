"""
Typing indicator REST fallback.

Used by clients whose socket is down; relays through the same path as
the ``typing_indicator`` socket event.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from chat_relay.core.rate_limit import limiter, typing_rate_limit, user_or_address_key
from chat_relay.dependencies import get_current_user, get_transport
from chat_relay.schemas.message import TypingIndicatorRequest, TypingIndicatorResponse
from chat_relay.services.message_transport import MessageTransportService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=TypingIndicatorResponse,
    summary="Send typing indicator",
    description="Relay a typing indicator to the receiver's connected sockets.",
)
@limiter.limit(typing_rate_limit, key_func=user_or_address_key)
async def send_typing_indicator(
    request: Request,
    body: TypingIndicatorRequest,
    current_user: dict = Depends(get_current_user),
    transport: MessageTransportService = Depends(get_transport),
):
    """Relay a typing indicator on behalf of the authenticated sender."""
    if body.sender_id != current_user["id"]:
        logger.warning(
            f"[typing] User {current_user['id']} tried to send typing indicator as {body.sender_id}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot send typing indicators for another user",
        )

    notified = await transport.relay_typing(body.sender_id, body.receiver_id, body.is_typing)
    return TypingIndicatorResponse(success=True, notified_clients=notified)
