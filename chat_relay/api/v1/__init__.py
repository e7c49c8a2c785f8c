"""
API v1 router exports.
Provides API endpoint routers.
"""
from chat_relay.api.v1 import messages, typing_indicator, encryption

__all__ = [
    "messages",
    "typing_indicator",
    "encryption",
]
