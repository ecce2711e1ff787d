"""Schemas related to OAuth flows and connector connections."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .base import CamelModel


class OAuthCallbackPayload(CamelModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class UserEmailRequest(CamelModel):
    """Body of endpoints that act on one user's connection."""

    user_email: Optional[str] = None


class SetupConnectionResponse(CamelModel):
    success: bool = True
    user_email: str
    entity_id: str
    connection_id: Optional[str] = None
    status: str
    redirect_url: Optional[str] = None
    message: str


__all__ = ["OAuthCallbackPayload", "SetupConnectionResponse", "UserEmailRequest"]
