"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_calendar_assistant,
    get_chat_notifications,
    get_connection_registry,
    get_gemini_client,
    get_google_oauth_client,
    get_google_token_service,
    get_integration_bridge,
    get_oauth_callback_handler,
    get_oauth_state_encoder,
    get_process_stats,
    get_record_store,
    get_token_cipher_service,
    get_tool_connector,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
    "get_calendar_assistant",
    "get_chat_notifications",
    "get_connection_registry",
    "get_gemini_client",
    "get_google_oauth_client",
    "get_google_token_service",
    "get_integration_bridge",
    "get_oauth_callback_handler",
    "get_oauth_state_encoder",
    "get_process_stats",
    "get_record_store",
    "get_token_cipher_service",
    "get_tool_connector",
]
