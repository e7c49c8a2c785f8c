"""
Request rate limiting (slowapi).

Authenticated endpoints are limited per user; the user id is placed on
``request.state`` by ``get_current_user`` before the limit is checked.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from chat_relay.config import get_settings


def user_or_address_key(request: Request) -> str:
    """Rate limit key: the authenticated user, else the client address."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is not None:
        return f"user:{user_id}"
    return get_remote_address(request)


def typing_rate_limit() -> str:
    return get_settings().typing_rate_limit


limiter = Limiter(key_func=get_remote_address)
