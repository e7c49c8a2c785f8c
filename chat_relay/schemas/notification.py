"""
Pydantic schemas for the notification namespace.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class PresenceEvent(BaseModel):
    """Payload of the ``presence`` event."""

    online: bool


class NotificationPayload(BaseModel):
    """
    Notification handed to the fan-out service.

    Unknown keys are kept and delivered unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    type: str = Field(default="info", max_length=50)
    title: str = Field(default="", max_length=255)
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
