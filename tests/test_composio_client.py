from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json

import httpx
import pytest

from smartplan.clients.composio import ComposioClient, ToolConnectorError
from smartplan.core.config import ComposioSettings


def _settings(**overrides) -> ComposioSettings:
    values = {"COMPOSIO_API_KEY": "composio-key", "COMPOSIO_BASE_URL": "https://composio.test"}
    values.update(overrides)
    return ComposioSettings(**values)


class Recorder:
    def __init__(self, responses: dict[tuple[str, str], httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses[(request.method, request.url.path)]


@pytest.mark.anyio
async def test_get_active_connection_returns_first_active_account() -> None:
    recorder = Recorder(
        {
            ("GET", "/api/v1/connectedAccounts"): httpx.Response(
                200,
                json={
                    "items": [
                        {"id": "ca_old", "status": "EXPIRED"},
                        {"id": "ca_live", "status": "ACTIVE"},
                    ]
                },
            )
        }
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    account = await client.get_active_connection("a_b_com")

    assert account is not None
    assert account.id == "ca_live"
    request = recorder.requests[0]
    assert request.headers["x-api-key"] == "composio-key"
    assert request.url.params["user_uuid"] == "a_b_com"
    assert request.url.params["appNames"] == "googlecalendar"


@pytest.mark.anyio
async def test_initiate_connection_returns_redirect() -> None:
    recorder = Recorder(
        {
            ("POST", "/api/v1/connectedAccounts"): httpx.Response(
                200,
                json={
                    "connectedAccountId": "ca_new",
                    "connectionStatus": "INITIATED",
                    "redirectUrl": "https://composio.test/redirect/ca_new",
                },
            )
        }
    )
    client = ComposioClient(
        _settings(COMPOSIO_INTEGRATION_ID="int_1"), transport=httpx.MockTransport(recorder)
    )

    account = await client.initiate_connection("a_b_com")

    assert account.id == "ca_new"
    assert not account.is_active
    assert account.redirect_url == "https://composio.test/redirect/ca_new"
    body = json.loads(recorder.requests[0].content)
    assert body["entityId"] == "a_b_com"
    assert body["integrationId"] == "int_1"


@pytest.mark.anyio
async def test_get_tools_maps_action_schemas() -> None:
    recorder = Recorder(
        {
            ("GET", "/api/v2/actions"): httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "name": "GOOGLECALENDAR_CREATE_EVENT",
                            "description": "Create an event",
                            "parameters": {"type": "object", "properties": {}},
                        }
                    ]
                },
            )
        }
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    tools = await client.get_tools("a_b_com", ["GOOGLECALENDAR_CREATE_EVENT"])

    assert [tool.name for tool in tools] == ["GOOGLECALENDAR_CREATE_EVENT"]
    assert recorder.requests[0].url.params["actions"] == "GOOGLECALENDAR_CREATE_EVENT"


@pytest.mark.anyio
async def test_get_tools_without_actions_skips_request() -> None:
    recorder = Recorder({})
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    assert await client.get_tools("a_b_com", []) == []
    assert recorder.requests == []


@pytest.mark.anyio
async def test_execute_action_accepts_legacy_success_key() -> None:
    recorder = Recorder(
        {
            ("POST", "/api/v2/actions/GOOGLECALENDAR_QUICK_ADD/execute"): httpx.Response(
                200, json={"successfull": True, "data": {"id": "evt_1"}, "error": None}
            )
        }
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    result = await client.execute_action("a_b_com", "GOOGLECALENDAR_QUICK_ADD", {"text": "Gym 7am"})

    assert result.successful is True
    assert result.data == {"id": "evt_1"}
    assert json.loads(recorder.requests[0].content)["input"] == {"text": "Gym 7am"}


@pytest.mark.anyio
async def test_error_status_raises_connector_error() -> None:
    recorder = Recorder(
        {("GET", "/api/v1/connectedAccounts"): httpx.Response(401, text="bad key")}
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    with pytest.raises(ToolConnectorError):
        await client.get_active_connection("a_b_com")


@pytest.mark.anyio
async def test_transport_failure_raises_connector_error() -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ComposioClient(_settings(), transport=httpx.MockTransport(_fail))

    with pytest.raises(ToolConnectorError):
        await client.initiate_connection("a_b_com")


@pytest.mark.anyio
async def test_missing_api_key_raises_without_request() -> None:
    recorder = Recorder({})
    client = ComposioClient(
        _settings(COMPOSIO_API_KEY=None), transport=httpx.MockTransport(recorder)
    )

    with pytest.raises(ToolConnectorError):
        await client.get_active_connection("a_b_com")
    assert recorder.requests == []


@pytest.mark.anyio
@pytest.mark.parametrize("items", [None, ["ca_live"], {"id": "ca_live"}])
async def test_malformed_account_items_raise_connector_error(items) -> None:
    recorder = Recorder(
        {("GET", "/api/v1/connectedAccounts"): httpx.Response(200, json={"items": items})}
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    with pytest.raises(ToolConnectorError):
        await client.get_active_connection("a_b_com")


@pytest.mark.anyio
async def test_malformed_action_items_raise_connector_error() -> None:
    recorder = Recorder(
        {("GET", "/api/v2/actions"): httpx.Response(200, json={"items": [None]})}
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    with pytest.raises(ToolConnectorError):
        await client.get_tools("a_b_com", ["GOOGLECALENDAR_CREATE_EVENT"])


@pytest.mark.anyio
async def test_missing_items_key_means_no_accounts() -> None:
    recorder = Recorder(
        {("GET", "/api/v1/connectedAccounts"): httpx.Response(200, json={"total": 0})}
    )
    client = ComposioClient(_settings(), transport=httpx.MockTransport(recorder))

    assert await client.get_active_connection("a_b_com") is None
