"""
Registry of per-user OAuth connections.

Records live in an injected ``RecordStore`` under ``user#<email>`` /
``oauth#google``. Usability is evaluated whenever a record is read; nothing
sweeps expired records in the background.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from smartplan.clients.google_auth import TokenGrant
from smartplan.clients.record_store import RecordStore
from smartplan.core.errors import ValidationError
from smartplan.models.connection import (
    ConnectionRecord,
    ConnectionRecordStatus,
    ConnectionSummary,
)
from smartplan.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

SORT_KEY = "oauth#google"
DEFAULT_EXPIRES_IN = 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def partition_key(user_email: str) -> str:
    return f"user#{user_email}"


class ConnectionRegistry:
    """Create, read and retire OAuth connection records."""

    def __init__(
        self,
        store: RecordStore,
        *,
        token_cipher: TokenCipherService | None = None,
        refresh_window: timedelta = timedelta(seconds=DEFAULT_EXPIRES_IN),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._cipher = token_cipher
        self._refresh_window = refresh_window
        self._clock = clock

    def upsert(self, user_email: str, grant: TokenGrant) -> ConnectionRecord:
        """Create or replace the record for ``user_email``."""
        email = _require_email(user_email)
        now = self._clock()
        expires_in = grant.expires_in if grant.expires_in is not None else DEFAULT_EXPIRES_IN
        record = ConnectionRecord(
            connection_id=f"conn_{uuid.uuid4().hex}",
            user_email=email,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
            status=ConnectionRecordStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self._save(record)
        logger.info(
            "Stored Google connection %s for %s (refresh token: %s)",
            record.connection_id,
            email,
            "yes" if record.refresh_token else "no",
        )
        return record

    def get(self, user_email: str) -> Optional[ConnectionRecord]:
        email = _require_email(user_email)
        item = self._store.get_item(partition_key=partition_key(email), sort_key=SORT_KEY)
        if item is None:
            return None
        return self._load(item)

    def is_active(self, user_email: str) -> bool:
        record = self.get(user_email)
        return record is not None and record.is_usable(self._clock())

    def refresh(
        self,
        user_email: str,
        *,
        access_token: str | None = None,
        expires_in: int | None = None,
    ) -> bool:
        """Push the expiry forward for a record that holds a refresh token.

        The registry never contacts the identity provider. Callers that did
        perform a refresh grant pass the new ``access_token``/``expires_in``;
        otherwise the expiry is extended by the configured window.
        Revoked records stay revoked; the user has to reconnect.
        """
        record = self.get(user_email)
        if record is None or not record.refresh_token:
            return False
        if record.status is ConnectionRecordStatus.REVOKED:
            return False

        now = self._clock()
        window = (
            timedelta(seconds=expires_in) if expires_in is not None else self._refresh_window
        )
        updates: Dict[str, Any] = {"expires_at": now + window, "updated_at": now}
        if access_token:
            updates["access_token"] = access_token
        self._save(record.model_copy(update=updates))
        return True

    def revoke(self, user_email: str) -> bool:
        record = self.get(user_email)
        if record is None:
            return False
        self._save(
            record.model_copy(
                update={
                    "status": ConnectionRecordStatus.REVOKED,
                    "updated_at": self._clock(),
                }
            )
        )
        logger.info("Revoked Google connection for %s", record.user_email)
        return True

    def list_connections(self) -> list[ConnectionRecord]:
        return [self._load(item) for item in self._store.list_items(sort_key=SORT_KEY)]

    def summary(self) -> ConnectionSummary:
        now = self._clock()
        records = self.list_connections()
        active = sum(1 for record in records if record.is_usable(now))
        expired = sum(
            1
            for record in records
            if record.status is ConnectionRecordStatus.EXPIRED
            or (record.status is ConnectionRecordStatus.ACTIVE and record.expires_at <= now)
        )
        return ConnectionSummary(total=len(records), active=active, expired=expired)

    def _save(self, record: ConnectionRecord) -> None:
        item = record.model_dump(mode="json")
        if self._cipher is not None:
            item["access_token"] = self._cipher.encrypt(record.access_token)
            item["refresh_token"] = self._cipher.encrypt_optional(record.refresh_token)
            item["encrypted"] = True
        item["pk"] = partition_key(record.user_email)
        item["sk"] = SORT_KEY
        self._store.put_item(item)

    def _load(self, item: Dict[str, Any]) -> ConnectionRecord:
        data = {key: value for key, value in item.items() if key not in {"pk", "sk", "encrypted"}}
        if item.get("encrypted"):
            if self._cipher is None:
                raise ValueError(
                    "Stored tokens are encrypted but no token cipher is configured."
                )
            data["access_token"] = self._cipher.decrypt(data["access_token"])
            data["refresh_token"] = self._cipher.decrypt_optional(data.get("refresh_token"))
        return ConnectionRecord.model_validate(data)


def _require_email(user_email: str | None) -> str:
    email = (user_email or "").strip()
    if not email:
        raise ValidationError("userEmail is required")
    return email


__all__ = ["ConnectionRegistry", "SORT_KEY", "partition_key"]
