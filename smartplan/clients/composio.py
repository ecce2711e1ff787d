"""Clients for the Composio tool-connector platform.

``ComposioClient`` talks to the hosted REST API. ``SimulatedToolConnector`` is
an explicit fake backend that fabricates identifiers and echoes tool input; it
is selected with ``TOOL_CONNECTOR_BACKEND=simulated`` or when no API key is
configured, and never pretends to reach Google Calendar.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from smartplan.core.config import ComposioSettings
from smartplan.core.errors import UpstreamServiceError
from smartplan.models.tools import ToolBinding, ToolResult

logger = logging.getLogger(__name__)


class ToolConnectorError(UpstreamServiceError):
    """Raised when the connector platform returns an error or is unreachable."""


class ConnectorAccount(BaseModel):
    """A connected account on the connector platform."""

    id: str
    status: str
    redirect_url: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status.upper() == "ACTIVE"


class ToolConnector(Protocol):
    async def get_active_connection(self, entity_id: str) -> ConnectorAccount | None: ...

    async def initiate_connection(self, entity_id: str) -> ConnectorAccount: ...

    async def get_tools(self, entity_id: str, actions: List[str]) -> List[ToolBinding]: ...

    async def execute_action(
        self, entity_id: str, action: str, arguments: Dict[str, Any]
    ) -> ToolResult: ...


class ComposioClient:
    """Thin async wrapper over the Composio REST API."""

    def __init__(
        self,
        settings: ComposioSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def get_active_connection(self, entity_id: str) -> ConnectorAccount | None:
        """Return the entity's active account for the configured app, if any."""
        params = {
            "user_uuid": entity_id,
            "appNames": self._settings.app_name,
            "showActiveOnly": "true",
        }
        payload = await self._request("GET", "/api/v1/connectedAccounts", params=params)
        for item in _items(payload):
            account = ConnectorAccount(
                id=str(item.get("id", "")),
                status=str(item.get("status", "")),
            )
            if account.id and account.is_active:
                return account
        return None

    async def initiate_connection(self, entity_id: str) -> ConnectorAccount:
        body: Dict[str, Any] = {
            "entityId": entity_id,
            "appName": self._settings.app_name,
            "data": {},
        }
        if self._settings.integration_id:
            body["integrationId"] = self._settings.integration_id
        payload = await self._request("POST", "/api/v1/connectedAccounts", json=body)

        account_id = payload.get("connectedAccountId") or payload.get("id")
        if not account_id:
            raise ToolConnectorError("Composio did not return a connected account id.")
        return ConnectorAccount(
            id=str(account_id),
            status=str(payload.get("connectionStatus") or "INITIATED"),
            redirect_url=payload.get("redirectUrl"),
        )

    async def get_tools(self, entity_id: str, actions: List[str]) -> List[ToolBinding]:
        """Fetch schemas for the requested actions.

        Schemas are global; the entity only matters when executing.
        """
        if not actions:
            return []
        payload = await self._request(
            "GET", "/api/v2/actions", params={"actions": ",".join(actions)}
        )
        tools: List[ToolBinding] = []
        for item in _items(payload):
            name = item.get("name") or item.get("enum")
            if not name:
                continue
            parameters = item.get("parameters")
            tools.append(
                ToolBinding(
                    name=str(name),
                    description=str(item.get("description") or ""),
                    parameters=parameters if isinstance(parameters, dict) else {},
                )
            )
        logger.debug("Fetched %d tool schemas for entity %s", len(tools), entity_id)
        return tools

    async def execute_action(
        self, entity_id: str, action: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        body = {
            "entityId": entity_id,
            "appName": self._settings.app_name,
            "input": arguments,
        }
        payload = await self._request("POST", f"/api/v2/actions/{action}/execute", json=body)
        # The platform spells this key "successfull" on some API versions.
        successful = payload.get("successful", payload.get("successfull", False))
        error = payload.get("error")
        return ToolResult(
            name=action,
            successful=bool(successful),
            data=payload.get("data"),
            error=str(error) if error else None,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        if not self._settings.api_key:
            raise ToolConnectorError("Composio is not configured: COMPOSIO_API_KEY is missing.")

        headers = {"x-api-key": self._settings.api_key}
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=10.0,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ToolConnectorError(f"Composio request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ToolConnectorError(
                f"Composio {method} {path} returned {response.status_code}: {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ToolConnectorError("Composio returned a non-JSON body.") from exc
        return payload if isinstance(payload, dict) else {"items": payload}


def _items(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = payload.get("items")
    if items is None and "items" not in payload:
        return []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ToolConnectorError("Composio returned a malformed items list.")
    return items


_SIMULATED_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "GOOGLECALENDAR_QUICK_ADD": {
        "description": "Create an event from a natural-language sentence.",
        "parameters": {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "Event description."},
                "calendar_id": {"type": "string"},
            },
            "required": ["text"],
        },
    },
    "GOOGLECALENDAR_LIST_EVENTS": {
        "description": "List events between two instants.",
        "parameters": {
            "type": "object",
            "properties": {
                "time_min": {"type": "string", "format": "date-time"},
                "time_max": {"type": "string", "format": "date-time"},
                "max_results": {"type": "integer"},
            },
        },
    },
    "GOOGLECALENDAR_CREATE_EVENT": {
        "description": "Create a calendar event.",
        "parameters": {
            "type": "object",
            "properties": {
                "summary": {"type": "string"},
                "start_datetime": {"type": "string", "format": "date-time"},
                "event_duration_minutes": {"type": "integer"},
                "description": {"type": "string"},
                "attendees": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["summary", "start_datetime"],
        },
    },
    "GOOGLECALENDAR_UPDATE_EVENT": {
        "description": "Update an existing calendar event.",
        "parameters": {
            "type": "object",
            "properties": {
                "event_id": {"type": "string"},
                "summary": {"type": "string"},
                "start_datetime": {"type": "string", "format": "date-time"},
                "event_duration_minutes": {"type": "integer"},
            },
            "required": ["event_id"],
        },
    },
    "GOOGLECALENDAR_DELETE_EVENT": {
        "description": "Delete a calendar event.",
        "parameters": {
            "type": "object",
            "properties": {"event_id": {"type": "string"}},
            "required": ["event_id"],
        },
    },
}


class SimulatedToolConnector:
    """In-process stand-in for the connector platform.

    With ``auto_activate`` the initiated account counts as authorized right
    away, mirroring a user who already granted calendar access through our own
    OAuth callback.
    """

    def __init__(self, *, app_name: str = "googlecalendar", auto_activate: bool = True) -> None:
        self._app_name = app_name
        self._auto_activate = auto_activate
        self._accounts: dict[str, ConnectorAccount] = {}
        self._lock = threading.Lock()
        self.executed: list[tuple[str, str, Dict[str, Any]]] = []

    async def get_active_connection(self, entity_id: str) -> ConnectorAccount | None:
        with self._lock:
            account = self._accounts.get(entity_id)
        if account and account.is_active:
            return account
        return None

    async def initiate_connection(self, entity_id: str) -> ConnectorAccount:
        account_id = f"sim_conn_{uuid.uuid4().hex[:12]}"
        redirect_url = "https://simulated.invalid/connect?" + urlencode(
            {"app": self._app_name, "entity": entity_id, "account": account_id}
        )
        stored = ConnectorAccount(
            id=account_id,
            status="ACTIVE" if self._auto_activate else "INITIATED",
            redirect_url=redirect_url,
        )
        with self._lock:
            self._accounts[entity_id] = stored
        logger.info("Simulated connector initiated account %s for %s", account_id, entity_id)
        return ConnectorAccount(id=account_id, status="INITIATED", redirect_url=redirect_url)

    def complete_connection(self, entity_id: str) -> bool:
        """Mark a pending simulated account as authorized."""
        with self._lock:
            account = self._accounts.get(entity_id)
            if account is None:
                return False
            self._accounts[entity_id] = account.model_copy(update={"status": "ACTIVE"})
        return True

    async def get_tools(self, entity_id: str, actions: List[str]) -> List[ToolBinding]:
        return [
            ToolBinding(name=action, **_SIMULATED_SCHEMAS[action])
            for action in actions
            if action in _SIMULATED_SCHEMAS
        ]

    async def execute_action(
        self, entity_id: str, action: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        self.executed.append((entity_id, action, arguments))
        if action not in _SIMULATED_SCHEMAS:
            return ToolResult(name=action, successful=False, error=f"Unknown action {action}.")
        return ToolResult(
            name=action,
            successful=True,
            data={
                "simulated": True,
                "id": f"sim_evt_{uuid.uuid4().hex[:10]}",
                "input": arguments,
            },
        )


__all__ = [
    "ComposioClient",
    "ConnectorAccount",
    "SimulatedToolConnector",
    "ToolConnector",
    "ToolConnectorError",
]
