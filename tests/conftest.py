"""Pytest configuration shared across the suite."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from smartplan.clients.composio import SimulatedToolConnector
from smartplan.clients.google_auth import OAuthStateEncoder
from smartplan.clients.record_store import InMemoryStore
from smartplan.models.tools import ToolBinding, ToolPlan
from smartplan.services.chat_notifications import ChatNotificationLog
from smartplan.services.connection_registry import ConnectionRegistry
from smartplan.services.integration_bridge import IntegrationBridge

CALENDAR_ACTIONS = [
    "GOOGLECALENDAR_QUICK_ADD",
    "GOOGLECALENDAR_LIST_EVENTS",
    "GOOGLECALENDAR_CREATE_EVENT",
]


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


class RecordingLLM:
    """LLM double that records every call it receives."""

    def __init__(self, *, plan: ToolPlan | None = None, summary: str = "All set.") -> None:
        self.plan = plan or ToolPlan()
        self.summary = summary
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def plan_tool_calls(self, prompt: str, tools: list[ToolBinding]) -> ToolPlan:
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        return self.plan

    async def generate_text(self, prompt: str) -> str:
        self.calls.append(prompt)
        return self.summary


@dataclass
class ApiServices:
    store: InMemoryStore = field(default_factory=InMemoryStore)
    connector: SimulatedToolConnector = field(default_factory=SimulatedToolConnector)
    notifications: ChatNotificationLog = field(default_factory=ChatNotificationLog)
    state_encoder: OAuthStateEncoder = field(
        default_factory=lambda: OAuthStateEncoder("test-state-secret")
    )
    llm: RecordingLLM = field(default_factory=RecordingLLM)

    def __post_init__(self) -> None:
        self.registry = ConnectionRegistry(self.store)
        self.bridge = IntegrationBridge(
            connector=self.connector, store=self.store, actions=CALENDAR_ACTIONS
        )


@pytest.fixture()
def api_services():
    """Swap the process-wide singletons for fresh in-memory instances."""
    from smartplan import dependencies
    from smartplan.main import app

    services = ApiServices()
    app.dependency_overrides.update(
        {
            dependencies.get_connection_registry: lambda: services.registry,
            dependencies.get_integration_bridge: lambda: services.bridge,
            dependencies.get_tool_connector: lambda: services.connector,
            dependencies.get_chat_notifications: lambda: services.notifications,
            dependencies.get_oauth_state_encoder: lambda: services.state_encoder,
            dependencies.get_gemini_client: lambda: services.llm,
        }
    )

    yield services

    app.dependency_overrides.clear()
