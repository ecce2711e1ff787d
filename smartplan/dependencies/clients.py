"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

import logging
import secrets
from datetime import timedelta
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from smartplan.clients import (
    ComposioClient,
    GeminiClient,
    GoogleOAuthClient,
    InMemoryStore,
    OAuthStateEncoder,
    RecordStore,
    SimulatedToolConnector,
    SQLiteStore,
    ToolConnector,
)
from smartplan.core.config import AppSettings, get_settings
from smartplan.dependencies.config import get_app_settings
from smartplan.services import (
    CalendarAssistant,
    ChatNotificationLog,
    ConnectionRegistry,
    GoogleTokenService,
    IntegrationBridge,
    OAuthCallbackHandler,
    TokenCipherService,
)
from smartplan.services.stats import ProcessStats

logger = logging.getLogger(__name__)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Google client secret."""
    settings = _settings()
    secret = settings.google.client_secret or settings.security.token_encryption_secret
    if not secret:
        logger.warning("No OAuth signing secret configured; using a per-process key.")
        secret = secrets.token_urlsafe(32)
    return OAuthStateEncoder(secret_key=secret)


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = _settings()
    return GoogleOAuthClient(settings.google, settings.oauth)


@lru_cache()
def get_record_store() -> RecordStore:
    """Provide the store backing connection and entity records."""
    settings = _settings()
    if settings.storage.backend == "sqlite":
        return SQLiteStore(settings.storage.db_path)
    return InMemoryStore()


@lru_cache()
def get_token_cipher_service() -> TokenCipherService | None:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.google.client_secret
    if not secret:
        logger.warning("TOKEN_ENCRYPTION_SECRET missing; tokens are stored unencrypted.")
        return None
    return TokenCipherService(secret=secret)


@lru_cache()
def get_connection_registry() -> ConnectionRegistry:
    settings = _settings()
    return ConnectionRegistry(
        get_record_store(),
        token_cipher=get_token_cipher_service(),
        refresh_window=timedelta(seconds=settings.oauth.refresh_window_seconds),
    )


@lru_cache()
def get_tool_connector() -> ToolConnector:
    """Pick the real Composio client or the explicit simulated backend."""
    settings = _settings().composio
    if settings.backend == "simulated":
        logger.info("Using the simulated tool connector backend.")
        return SimulatedToolConnector(app_name=settings.app_name)
    if not settings.api_key:
        logger.warning("COMPOSIO_API_KEY missing; falling back to the simulated tool connector.")
        return SimulatedToolConnector(app_name=settings.app_name)
    return ComposioClient(settings)


@lru_cache()
def get_integration_bridge() -> IntegrationBridge:
    settings = _settings()
    return IntegrationBridge(
        connector=get_tool_connector(),
        store=get_record_store(),
        actions=list(settings.composio.calendar_actions),
    )


@lru_cache()
def get_chat_notifications() -> ChatNotificationLog:
    return ChatNotificationLog()


@lru_cache()
def get_gemini_client() -> GeminiClient:
    """Provide Gemini client instance."""
    settings = _settings()
    return GeminiClient(settings.gemini)


@lru_cache()
def get_process_stats() -> ProcessStats:
    return ProcessStats()


def get_oauth_callback_handler(
    oauth_client: Annotated[GoogleOAuthClient, Depends(get_google_oauth_client)],
    state_encoder: Annotated[OAuthStateEncoder, Depends(get_oauth_state_encoder)],
    registry: Annotated[ConnectionRegistry, Depends(get_connection_registry)],
    bridge: Annotated[IntegrationBridge, Depends(get_integration_bridge)],
    notifications: Annotated[ChatNotificationLog, Depends(get_chat_notifications)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> OAuthCallbackHandler:
    """Assemble the callback handler; each collaborator can be overridden in tests."""
    return OAuthCallbackHandler(
        oauth_client=oauth_client,
        state_encoder=state_encoder,
        registry=registry,
        bridge=bridge,
        notifications=notifications,
        oauth_settings=settings.oauth,
        app_root=settings.server.client_url,
    )


def get_google_token_service(
    registry: Annotated[ConnectionRegistry, Depends(get_connection_registry)],
    oauth_client: Annotated[GoogleOAuthClient, Depends(get_google_oauth_client)],
) -> GoogleTokenService:
    return GoogleTokenService(registry=registry, oauth_client=oauth_client)


def get_calendar_assistant(
    llm: Annotated[GeminiClient, Depends(get_gemini_client)],
    connector: Annotated[ToolConnector, Depends(get_tool_connector)],
    registry: Annotated[ConnectionRegistry, Depends(get_connection_registry)],
    bridge: Annotated[IntegrationBridge, Depends(get_integration_bridge)],
) -> CalendarAssistant:
    """Build the chat dispatcher from the shared clients."""
    return CalendarAssistant(llm=llm, connector=connector, registry=registry, bridge=bridge)


__all__ = [
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
