"""
Refresh-token grants for stored Google connections.
"""

from __future__ import annotations

import logging

from smartplan.clients.google_auth import GoogleOAuthClient
from smartplan.models.connection import ConnectionRecordStatus
from smartplan.services.connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class GoogleTokenService:
    """Exchange a stored refresh token and record the new expiry."""

    def __init__(self, *, registry: ConnectionRegistry, oauth_client: GoogleOAuthClient) -> None:
        self._registry = registry
        self._oauth = oauth_client

    async def refresh_connection(self, user_email: str) -> bool:
        """Return ``False`` when there is nothing to refresh or access was revoked.

        ``TokenExchangeFailed`` propagates when Google rejects the grant.
        """
        record = self._registry.get(user_email)
        if record is None or not record.refresh_token:
            return False
        if record.status is ConnectionRecordStatus.REVOKED:
            logger.info("Skipping refresh for revoked connection of %s", record.user_email)
            return False

        grant = await self._oauth.refresh_token(record.refresh_token)
        refreshed = self._registry.refresh(
            user_email,
            access_token=grant.access_token,
            expires_in=grant.expires_in,
        )
        logger.info("Refreshed Google access token for %s", record.user_email)
        return refreshed


__all__ = ["GoogleTokenService"]
