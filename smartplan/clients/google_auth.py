"""
Google OAuth utilities.

These helpers build the consent URL, sign the state round-trip and talk to the
token endpoint for both authorization-code and refresh-token grants.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import status
from pydantic import BaseModel

from smartplan.core.config import GoogleSettings, OAuthSettings
from smartplan.core.errors import MalformedCallback, TokenExchangeFailed

_DEFAULT_EXPIRES_IN = 3600


class TokenGrant(BaseModel):
    """Tokens returned by the identity provider."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise MalformedCallback("OAuth state token is not valid base64.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise MalformedCallback("Invalid OAuth state signature.")
        try:
            payload = json.loads(serialized)
        except json.JSONDecodeError as exc:
            raise MalformedCallback("OAuth state payload is not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise MalformedCallback("OAuth state payload must be an object.")
        return payload


class GoogleOAuthClient:
    """Build Google authorization URLs and exchange authorization codes."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._transport = transport

    def build_authorization_url(self, state: str, access_type: str = "offline") -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._google.client_id or "",
            "redirect_uri": self._google.redirect_uri or "",
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
            "state": state,
        }
        query = urlencode(params)
        return f"{self.AUTH_BASE_URL}?{query}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": self._google.redirect_uri,
            "grant_type": "authorization_code",
        }
        token_payload = await self._post_token_request(payload)

        access_token = token_payload.get("access_token")
        if not access_token:
            raise TokenExchangeFailed("Incomplete token payload returned from Google.")

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token"),
            expires_in=int(token_payload.get("expires_in") or _DEFAULT_EXPIRES_IN),
            scope=token_payload.get("scope"),
            token_type=token_payload.get("token_type"),
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        token_payload = await self._post_token_request(payload)

        access_token = token_payload.get("access_token")
        if not access_token:
            raise TokenExchangeFailed("Incomplete refresh payload returned from Google.")

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token") or refresh_token,
            expires_in=int(token_payload.get("expires_in") or _DEFAULT_EXPIRES_IN),
            scope=token_payload.get("scope"),
            token_type=token_payload.get("token_type"),
        )

    async def _post_token_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._google.configured:
            raise TokenExchangeFailed("Google OAuth client credentials are missing.")

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(self.TOKEN_URL, data=payload)
        except httpx.HTTPError as exc:
            raise TokenExchangeFailed(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise TokenExchangeFailed(response.text)

        try:
            return response.json()
        except ValueError as exc:
            raise TokenExchangeFailed("Token endpoint returned a non-JSON body.") from exc


__all__ = [
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "TokenGrant",
]
