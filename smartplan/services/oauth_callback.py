"""
OAuth redirect handling for Google Calendar access.

The handler walks one redirect through ``processing`` steps (validating the
code, exchanging it, configuring the connector integration) and always lands in
exactly one terminal state, ``success`` or ``error``. Nothing is retried; the
user restarts the flow from the consent screen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field

from smartplan.clients.google_auth import GoogleOAuthClient, OAuthStateEncoder
from smartplan.core.config import OAuthSettings
from smartplan.core.errors import CallbackError, IntegrationSetupFailed, MalformedCallback
from smartplan.services.chat_notifications import ChatNotificationLog
from smartplan.services.connection_registry import ConnectionRegistry
from smartplan.services.integration_bridge import IntegrationBridge

logger = logging.getLogger(__name__)

SUCCESS_NOTIFICATION = (
    "Google Calendar is now connected with AI integration. I can create, update "
    "and manage events in your calendar from natural-language requests."
)


class CallbackStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class CallbackStep(BaseModel):
    status: CallbackStatus
    message: str
    details: Optional[str] = None


class CallbackOutcome(BaseModel):
    """Terminal result plus every state the flow passed through."""

    status: CallbackStatus
    message: str
    details: Optional[str] = None
    user_email: Optional[str] = None
    connection_id: Optional[str] = None
    redirect_to: str
    redirect_after_seconds: int
    notification: str
    steps: List[CallbackStep] = Field(default_factory=list)


@dataclass(frozen=True)
class OAuthCallbackResult:
    authorization_code: str
    state_token: str


def parse_callback_url(callback_url: str) -> OAuthCallbackResult:
    """Extract ``code`` and ``state`` from the provider redirect."""
    query = parse_qs(urlparse(callback_url).query)

    provider_error = _first(query, "error")
    if provider_error:
        raise MalformedCallback(f"Authorization was not granted: {provider_error}")

    code = _first(query, "code")
    state = _first(query, "state")
    if not code:
        raise MalformedCallback("Authorization code missing from callback URL.")
    if not state:
        raise MalformedCallback("State parameter missing from callback URL.")
    return OAuthCallbackResult(authorization_code=code, state_token=state)


def _first(query: Dict[str, List[str]], name: str) -> str:
    values = query.get(name) or [""]
    return values[0].strip()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthCallbackHandler:
    """Complete the authorization-code flow for one redirect."""

    def __init__(
        self,
        *,
        oauth_client: GoogleOAuthClient,
        state_encoder: OAuthStateEncoder,
        registry: ConnectionRegistry,
        bridge: IntegrationBridge,
        notifications: ChatNotificationLog,
        oauth_settings: OAuthSettings,
        app_root: str = "/",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._oauth = oauth_client
        self._state_encoder = state_encoder
        self._registry = registry
        self._bridge = bridge
        self._notifications = notifications
        self._settings = oauth_settings
        self._app_root = app_root
        self._clock = clock

    async def handle(self, callback_url: str) -> CallbackOutcome:
        steps: List[CallbackStep] = []
        user_email: Optional[str] = None

        def advance(message: str) -> None:
            steps.append(CallbackStep(status=CallbackStatus.PROCESSING, message=message))

        try:
            advance("Validating authorization code...")
            callback = parse_callback_url(callback_url)
            state = self._verify_state(callback.state_token)
            user_email = state["user_email"]

            advance("Exchanging authorization code for access token...")
            grant = await self._oauth.exchange_authorization_code(callback.authorization_code)
            record = self._registry.upsert(user_email, grant)

            advance("Setting up AI integration...")
            try:
                await self._bridge.setup_connection(user_email)
            except IntegrationSetupFailed as exc:
                # Calendar access already succeeded; the connector can be set up later.
                logger.warning("Failed to connect to server integration for %s: %s", user_email, exc)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Unexpected server integration failure for %s", user_email)
        except CallbackError as exc:
            return self._fail(steps, user_email, str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected OAuth callback failure")
            return self._fail(steps, user_email, str(exc) or exc.__class__.__name__)

        details = "Google Calendar is now connected with AI integration. Redirecting..."
        steps.append(
            CallbackStep(
                status=CallbackStatus.SUCCESS,
                message="Authentication successful!",
                details=details,
            )
        )
        self._notifications.post(user_email, SUCCESS_NOTIFICATION)
        logger.info("OAuth callback completed for %s", user_email)
        return CallbackOutcome(
            status=CallbackStatus.SUCCESS,
            message="Authentication successful!",
            details=details,
            user_email=user_email,
            connection_id=record.connection_id,
            redirect_to=state.get("redirect_to") or self._app_root,
            redirect_after_seconds=self._settings.success_redirect_delay,
            notification=SUCCESS_NOTIFICATION,
            steps=steps,
        )

    def _verify_state(self, state_token: str) -> Dict[str, Any]:
        state = self._state_encoder.decode(state_token)

        issued_at_raw = state.get("issued_at")
        if not issued_at_raw:
            raise MalformedCallback("Missing issued_at in state token.")
        try:
            issued_at = datetime.fromisoformat(issued_at_raw)
        except (TypeError, ValueError) as exc:
            raise MalformedCallback("Invalid issued_at in state token.") from exc
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)

        if self._clock() - issued_at > timedelta(seconds=self._settings.state_ttl_seconds):
            raise MalformedCallback("OAuth state token has expired.")

        if not state.get("user_email"):
            raise MalformedCallback("Missing user email in state token.")
        return state

    def _fail(
        self, steps: List[CallbackStep], user_email: Optional[str], reason: str
    ) -> CallbackOutcome:
        logger.error("OAuth callback error: %s", reason)
        steps.append(
            CallbackStep(
                status=CallbackStatus.ERROR,
                message="Authentication failed",
                details=reason,
            )
        )
        notification = f"Authentication failed: {reason}. Please try connecting again."
        if user_email:
            self._notifications.post(user_email, notification)
        return CallbackOutcome(
            status=CallbackStatus.ERROR,
            message="Authentication failed",
            details=reason,
            user_email=user_email,
            redirect_to=self._app_root,
            redirect_after_seconds=self._settings.error_redirect_delay,
            notification=notification,
            steps=steps,
        )


__all__ = [
    "CallbackOutcome",
    "CallbackStatus",
    "CallbackStep",
    "OAuthCallbackHandler",
    "OAuthCallbackResult",
    "parse_callback_url",
]
