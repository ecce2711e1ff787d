"""Public schema exports."""

from .auth import OAuthCallbackPayload, SetupConnectionResponse, UserEmailRequest
from .base import CamelModel
from .chat import (
    CalendarEventContext,
    ChatContext,
    ChatPreferences,
    SendMessageRequest,
    SendMessageResponse,
)

__all__ = [
    "CalendarEventContext",
    "CamelModel",
    "ChatContext",
    "ChatPreferences",
    "OAuthCallbackPayload",
    "SendMessageRequest",
    "SendMessageResponse",
    "SetupConnectionResponse",
    "UserEmailRequest",
]
