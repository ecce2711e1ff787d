"""
Domain models for connection and token bookkeeping.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from smartplan.models.tools import ToolBinding


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionRecordStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class ConnectionRecord(BaseModel):
    """OAuth tokens held for one user, keyed by email."""

    connection_id: str = Field(..., description="Opaque id assigned at creation.")
    user_email: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    status: ConnectionRecordStatus = ConnectionRecordStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_usable(self, now: datetime) -> bool:
        """Active status alone is not enough; the expiry is checked at read time."""
        return self.status is ConnectionRecordStatus.ACTIVE and self.expires_at > now


class EntityConnectionStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"


class EntityConnection(BaseModel):
    """Link between a user and their connector-platform entity."""

    user_email: str
    entity_id: str
    connection_id: Optional[str] = None
    status: EntityConnectionStatus
    redirect_url: Optional[str] = None
    connected_at: datetime = Field(default_factory=utcnow)


class ConnectionState(str, Enum):
    """Resolved state used by the chat dispatcher and diagnostics."""

    NOT_FOUND = "not_found"
    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"


class ConnectionStatus(BaseModel):
    status: ConnectionState
    message: str
    tools_available: int = 0
    redirect_url: Optional[str] = None
    # Catalog fetched while resolving an active connection.
    tools: List[ToolBinding] = Field(default_factory=list, exclude=True)


class ConnectionSummary(BaseModel):
    total: int = 0
    active: int = 0
    expired: int = 0


__all__ = [
    "ConnectionRecord",
    "ConnectionRecordStatus",
    "ConnectionState",
    "ConnectionStatus",
    "ConnectionSummary",
    "EntityConnection",
    "EntityConnectionStatus",
    "utcnow",
]
