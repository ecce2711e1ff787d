"""
Bridge between confirmed Google users and their connector-platform entity.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from smartplan.clients.composio import ToolConnector
from smartplan.clients.record_store import RecordStore
from smartplan.core.errors import IntegrationSetupFailed, UpstreamServiceError, ValidationError
from smartplan.models.connection import (
    ConnectionState,
    ConnectionStatus,
    EntityConnection,
    EntityConnectionStatus,
)
from smartplan.services.connection_registry import partition_key

logger = logging.getLogger(__name__)

SORT_KEY = "connector#entity"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def entity_id_for(user_email: str) -> str:
    """Derive the connector entity id: non-alphanumerics become ``_``, lower-cased."""
    return _NON_ALNUM.sub("_", user_email).lower()


class IntegrationBridge:
    """Provision and inspect connector connections per user."""

    def __init__(
        self,
        *,
        connector: ToolConnector,
        store: RecordStore,
        actions: List[str],
    ) -> None:
        self._connector = connector
        self._store = store
        self._actions = list(actions)

    async def setup_connection(self, user_email: str) -> EntityConnection:
        """Reuse the entity's active connection or start a new one."""
        email = (user_email or "").strip()
        if not email:
            raise ValidationError("userEmail is required")

        entity_id = entity_id_for(email)
        logger.info("Setting up connector connection for %s (entity %s)", email, entity_id)

        try:
            account = await self._connector.get_active_connection(entity_id)
            if account is not None:
                connection = EntityConnection(
                    user_email=email,
                    entity_id=entity_id,
                    connection_id=account.id,
                    status=EntityConnectionStatus.ACTIVE,
                )
            else:
                account = await self._connector.initiate_connection(entity_id)
                connection = EntityConnection(
                    user_email=email,
                    entity_id=entity_id,
                    connection_id=account.id,
                    status=EntityConnectionStatus.PENDING,
                    redirect_url=account.redirect_url,
                )
        except UpstreamServiceError as exc:
            logger.error("Connector setup failed for %s: %s", email, exc)
            raise IntegrationSetupFailed(str(exc)) from exc

        self._save(connection)
        if connection.status is EntityConnectionStatus.PENDING:
            logger.info("Connection for %s pending; redirect %s", email, connection.redirect_url)
        return connection

    def get_connection(self, user_email: str) -> Optional[EntityConnection]:
        item = self._store.get_item(partition_key=partition_key(user_email), sort_key=SORT_KEY)
        if item is None:
            return None
        return _load(item)

    def list_connections(self) -> List[EntityConnection]:
        return [_load(item) for item in self._store.list_items(sort_key=SORT_KEY)]

    def entity_count(self) -> int:
        return len(self._store.list_items(sort_key=SORT_KEY))

    async def check_connection_status(self, user_email: str) -> ConnectionStatus:
        """Resolve the connector-side status; failures come back as ``error``."""
        connection = self.get_connection(user_email)
        if connection is None:
            return ConnectionStatus(
                status=ConnectionState.NOT_FOUND, message="No connection found"
            )

        try:
            if connection.status is EntityConnectionStatus.PENDING:
                account = await self._connector.get_active_connection(connection.entity_id)
                if account is None:
                    return ConnectionStatus(
                        status=ConnectionState.PENDING,
                        message="Connection pending authentication",
                        redirect_url=connection.redirect_url,
                    )
                connection = connection.model_copy(
                    update={
                        "status": EntityConnectionStatus.ACTIVE,
                        "connection_id": account.id,
                    }
                )
                self._save(connection)

            tools = await self._connector.get_tools(connection.entity_id, self._actions)
        except UpstreamServiceError as exc:
            logger.error("Error checking connection status for %s: %s", user_email, exc)
            return ConnectionStatus(status=ConnectionState.ERROR, message=str(exc))

        if not tools:
            return ConnectionStatus(
                status=ConnectionState.PENDING,
                message="Connection pending authentication",
                redirect_url=connection.redirect_url,
            )
        return ConnectionStatus(
            status=ConnectionState.ACTIVE,
            message="Connection is active",
            tools_available=len(tools),
            tools=tools,
        )

    def _save(self, connection: EntityConnection) -> None:
        item = connection.model_dump(mode="json")
        item["pk"] = partition_key(connection.user_email)
        item["sk"] = SORT_KEY
        self._store.put_item(item)


def _load(item: dict) -> EntityConnection:
    data = {key: value for key, value in item.items() if key not in {"pk", "sk"}}
    return EntityConnection.model_validate(data)


__all__ = ["IntegrationBridge", "SORT_KEY", "entity_id_for"]
