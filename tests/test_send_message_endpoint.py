try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from smartplan.clients.gemini import GeminiModelError
from smartplan.clients.google_auth import TokenGrant
from smartplan.main import app
from smartplan.models.tools import ToolCall, ToolPlan

EMAIL = "a@b.com"


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


async def _connect(api_services) -> None:
    api_services.registry.upsert(
        EMAIL, TokenGrant(access_token="t1", refresh_token="r1", expires_in=3600)
    )
    await api_services.bridge.setup_connection(EMAIL)


@pytest.mark.anyio
async def test_send_message_without_connection_needs_connection(api_services):
    async with _client() as client:
        response = await client.post(
            "/api/ai/send-message", json={"message": "book lunch", "userEmail": EMAIL}
        )

    assert response.status_code == 200
    data = response.json()
    assert data["needsConnection"] is True
    assert data["success"] is True
    assert data["userEmail"] == EMAIL
    assert "toolCalls" not in data
    assert api_services.llm.calls == []


@pytest.mark.anyio
async def test_send_message_with_connection_runs_tools(api_services):
    await _connect(api_services)
    api_services.llm.plan = ToolPlan(
        tool_calls=[
            ToolCall(
                name="GOOGLECALENDAR_QUICK_ADD",
                arguments={"text": "Lunch with Dana tomorrow at noon"},
            )
        ]
    )
    api_services.llm.summary = "I added lunch with Dana for tomorrow at noon."

    async with _client() as client:
        response = await client.post(
            "/api/ai/send-message",
            json={
                "message": "add lunch with Dana tomorrow at noon",
                "userEmail": EMAIL,
                "context": {"currentDate": "2026-03-02T08:00:00Z", "events": []},
            },
        )

    assert response.status_code == 200
    data = response.json()
    assert data["needsConnection"] is False
    assert data["message"] == "I added lunch with Dana for tomorrow at noon."
    assert data["toolCalls"][0]["name"] == "GOOGLECALENDAR_QUICK_ADD"
    assert data["toolResults"][0]["successful"] is True
    assert data["timestamp"]
    assert len(api_services.llm.calls) == 2
    assert "Current date: 2026-03-02T08:00:00Z" in api_services.llm.calls[0]
    assert api_services.connector.executed[0][0] == "a_b_com"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "payload,detail",
    [
        ({"userEmail": EMAIL}, "Message is required"),
        ({"message": "   ", "userEmail": EMAIL}, "Message is required"),
        (
            {"message": "book lunch"},
            "User email is required for personalized calendar management",
        ),
    ],
)
async def test_send_message_validates_input(api_services, payload, detail):
    async with _client() as client:
        response = await client.post("/api/ai/send-message", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"] == detail
    assert api_services.llm.calls == []


@pytest.mark.anyio
async def test_llm_failure_is_bad_gateway(api_services):
    await _connect(api_services)
    api_services.llm.error = GeminiModelError("Gemini is not configured: GEMINI_API_KEY is missing.")

    async with _client() as client:
        response = await client.post(
            "/api/ai/send-message", json={"message": "book lunch", "userEmail": EMAIL}
        )

    assert response.status_code == 502
    assert "GEMINI_API_KEY" in response.json()["detail"]
