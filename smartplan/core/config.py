"""
Application configuration models and helpers.

Centralizes settings management so the API routes, the OAuth flow and the
connector clients share a consistent configuration surface. Every external
credential is optional: a missing key disables the matching feature and is
reported as "missing" instead of preventing startup.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


def _split_csv(value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    return tuple(item.strip() for item in value.split(",") if item.strip())


class GoogleSettings(BaseSettings):
    """Configuration required for the Google OAuth flow."""

    model_config = _ENV_CONFIG

    client_id: Optional[str] = Field(None, validation_alias="GOOGLE_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: Optional[str] = Field(
        None,
        validation_alias="GOOGLE_REDIRECT_URI",
        description="Callback URL registered with the Google OAuth client.",
    )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = _ENV_CONFIG

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/calendar.events",
            "https://www.googleapis.com/auth/userinfo.email",
            "openid",
        ),
        validation_alias="OAUTH_SCOPES",
    )
    success_redirect_delay: int = Field(
        2,
        validation_alias="OAUTH_SUCCESS_REDIRECT_DELAY",
        description="Seconds the callback page waits before returning to the app.",
    )
    error_redirect_delay: int = Field(
        5,
        validation_alias="OAUTH_ERROR_REDIRECT_DELAY",
        description="Longer delay so users can read the failure message.",
    )
    refresh_window_seconds: int = Field(
        3600,
        validation_alias="CONNECTION_REFRESH_WINDOW",
        description="How far a registry refresh pushes the expiry forward.",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        return _split_csv(value)


class GeminiSettings(BaseSettings):
    """Configuration for Gemini model access."""

    model_config = _ENV_CONFIG

    api_key: Optional[str] = Field(None, validation_alias="GEMINI_API_KEY")
    model_name: str = Field("gemini-2.0-flash", validation_alias="GEMINI_MODEL_NAME")


class ComposioSettings(BaseSettings):
    """Tool-connector platform configuration."""

    model_config = _ENV_CONFIG

    api_key: Optional[str] = Field(None, validation_alias="COMPOSIO_API_KEY")
    base_url: str = Field(
        "https://backend.composio.dev", validation_alias="COMPOSIO_BASE_URL"
    )
    app_name: str = Field("googlecalendar", validation_alias="COMPOSIO_APP_NAME")
    integration_id: Optional[str] = Field(
        None,
        validation_alias="COMPOSIO_INTEGRATION_ID",
        description="Integration used when initiating new connected accounts.",
    )
    calendar_actions: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "GOOGLECALENDAR_QUICK_ADD",
            "GOOGLECALENDAR_LIST_EVENTS",
            "GOOGLECALENDAR_CREATE_EVENT",
            "GOOGLECALENDAR_UPDATE_EVENT",
            "GOOGLECALENDAR_DELETE_EVENT",
        ),
        validation_alias="COMPOSIO_CALENDAR_ACTIONS",
    )
    backend: Literal["composio", "simulated"] = Field(
        "composio", validation_alias="TOOL_CONNECTOR_BACKEND"
    )

    @field_validator("calendar_actions", mode="before")
    @classmethod
    def _split_actions(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        return _split_csv(value)


class StorageSettings(BaseSettings):
    """Where connection and entity records are kept."""

    model_config = _ENV_CONFIG

    backend: Literal["memory", "sqlite"] = Field(
        "memory", validation_alias="CONNECTION_STORE"
    )
    db_path: str = Field("data/connections.db", validation_alias="CONNECTION_DB_PATH")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _ENV_CONFIG

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class ServerSettings(BaseSettings):
    """Listen address and cross-origin policy."""

    model_config = _ENV_CONFIG

    host: str = Field("0.0.0.0", validation_alias="SERVER_HOST")
    port: int = Field(3001, validation_alias="SERVER_PORT")
    client_url: str = Field(
        "http://localhost:5173",
        validation_alias="CLIENT_URL",
        description="Allowed CORS origin and the root users return to after OAuth.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _ENV_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    server: ServerSettings = Field(default_factory=ServerSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    composio: ComposioSettings = Field(default_factory=ComposioSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    def service_status(self) -> dict[str, str]:
        """Report which external services have credentials."""

        def _flag(value: object) -> str:
            return "configured" if value else "missing"

        return {
            "google_oauth": _flag(self.google.configured),
            "gemini": _flag(self.gemini.api_key),
            "composio": _flag(self.composio.api_key),
        }


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "ComposioSettings",
    "GeminiSettings",
    "GoogleSettings",
    "OAuthSettings",
    "SecuritySettings",
    "ServerSettings",
    "StorageSettings",
    "get_settings",
]
