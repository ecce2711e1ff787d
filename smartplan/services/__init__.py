"""Service layer exports."""

from .chat_notifications import ChatMessage, ChatNotificationLog
from .connection_registry import ConnectionRegistry
from .google_tokens import GoogleTokenService
from .integration_bridge import IntegrationBridge, entity_id_for
from .oauth_callback import CallbackOutcome, CallbackStatus, OAuthCallbackHandler
from .token_cipher import TokenCipherService
from .tool_dispatch import AssistantReply, CalendarAssistant

__all__ = [
    "AssistantReply",
    "CalendarAssistant",
    "CallbackOutcome",
    "CallbackStatus",
    "ChatMessage",
    "ChatNotificationLog",
    "ConnectionRegistry",
    "GoogleTokenService",
    "IntegrationBridge",
    "OAuthCallbackHandler",
    "TokenCipherService",
    "entity_id_for",
]
