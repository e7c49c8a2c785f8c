"""
Dependency injection for FastAPI routes.
Provides reusable dependencies for authentication and the services
constructed at startup.
"""
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from chat_relay.core.security import decode_token, extract_token_from_header, user_id_from_payload
from chat_relay.services.message_transport import MessageTransportService


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> dict:
    """
    Dependency to get the current authenticated user.

    Decodes the Bearer token locally and exposes the user id on
    ``request.state`` so rate limiters can key on it.

    Returns:
        Dictionary with the user's ``id``

    Raises:
        HTTPException: 401 if token is missing or invalid
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = extract_token_from_header(authorization)
    payload = decode_token(token, request.app.state.settings)
    user_id = user_id_from_payload(payload)

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: no user id",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user_id = user_id
    return {"id": user_id}


def get_transport(request: Request) -> MessageTransportService:
    """Message transport service created at startup."""
    return request.app.state.transport
