try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from smartplan.clients.google_auth import TokenGrant
from smartplan.core.errors import TokenExchangeFailed
from smartplan.main import app

EMAIL = "carol@example.com"


class DummyOAuthClient:
    def __init__(self) -> None:
        self.states: list[str] = []
        self.codes: list[str] = []
        self.refreshed: list[str] = []
        self.fail_refresh = False

    def build_authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        self.codes.append(code)
        return TokenGrant(access_token="access-token", refresh_token="refresh-token", expires_in=3600)

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        self.refreshed.append(refresh_token)
        if self.fail_refresh:
            raise TokenExchangeFailed("invalid_grant")
        return TokenGrant(access_token="access-token-2", refresh_token=refresh_token, expires_in=1800)


@pytest.fixture()
def oauth_client(api_services):
    from smartplan import dependencies

    dummy_client = DummyOAuthClient()
    app.dependency_overrides[dependencies.get_google_oauth_client] = lambda: dummy_client
    return dummy_client


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def _signed_state(api_services, **overrides) -> str:
    payload = {
        "nonce": "n1",
        "user_email": EMAIL,
        "issued_at": datetime.now(timezone.utc).isoformat(),
        "redirect_to": None,
    }
    payload.update(overrides)
    return api_services.state_encoder.encode(payload)


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(api_services, oauth_client):
    async with _client() as client:
        response = await client.get("/api/auth/google/authorize", params={"userEmail": EMAIL})

    assert response.status_code == 200
    data = response.json()
    assert data["authorizationUrl"].startswith("https://")
    assert oauth_client.states == [data["state"]]

    decoded = api_services.state_encoder.decode(data["state"])
    assert decoded["user_email"] == EMAIL
    assert decoded["issued_at"]
    assert decoded["nonce"]


@pytest.mark.anyio
async def test_authorize_redirects_when_requested(api_services, oauth_client):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google/authorize",
            params={"userEmail": EMAIL, "redirect": "true", "redirectTo": "http://localhost:5173/x"},
        )

    assert response.status_code == 307
    location = response.headers["location"]
    assert location.startswith("https://oauth.example.com/auth")
    state = parse_qs(urlparse(location).query)["state"][0]
    assert api_services.state_encoder.decode(state)["redirect_to"] == "http://localhost:5173/x"


@pytest.mark.anyio
async def test_authorize_requires_user_email(api_services, oauth_client):
    async with _client() as client:
        response = await client.get("/api/auth/google/authorize")

    assert response.status_code == 422


@pytest.mark.anyio
async def test_callback_redirect_returns_json_outcome(api_services, oauth_client):
    state = _signed_state(api_services)

    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback", params={"code": "ABC", "state": state}
        )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["user_email"] == EMAIL
    assert data["redirect_after_seconds"] == 2
    assert oauth_client.codes == ["ABC"]
    assert api_services.registry.is_active(EMAIL)
    assert api_services.bridge.get_connection(EMAIL) is not None


@pytest.mark.anyio
async def test_callback_renders_status_page_for_browsers(api_services, oauth_client):
    state = _signed_state(api_services)

    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback",
            params={"code": "ABC", "state": state},
            headers={"Accept": "text/html"},
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert 'http-equiv="refresh" content="2;url=http://localhost:5173"' in response.text
    assert "Authentication successful!" in response.text


@pytest.mark.anyio
async def test_callback_without_code_is_an_error(api_services, oauth_client):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback",
            params={"state": "XYZ"},
            headers={"Accept": "text/html"},
        )

    assert response.status_code == 400
    assert 'content="5;url=' in response.text
    assert "Return to App" in response.text
    assert oauth_client.codes == []


@pytest.mark.anyio
async def test_callback_post_completes_exchange(api_services, oauth_client):
    state = _signed_state(api_services)

    async with _client() as client:
        response = await client.post(
            "/api/auth/google/callback", json={"code": "XYZ-CODE", "state": state}
        )

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert oauth_client.codes == ["XYZ-CODE"]
    messages = api_services.notifications.list_messages(EMAIL)
    assert len(messages) == 1


@pytest.mark.anyio
async def test_chat_messages_lists_callback_notification(api_services, oauth_client):
    state = _signed_state(api_services)

    async with _client() as client:
        await client.get("/api/auth/google/callback", params={"code": "ABC", "state": state})
        response = await client.get("/api/chat/messages", params={"userEmail": EMAIL})

    assert response.status_code == 200
    messages = response.json()["messages"]
    assert len(messages) == 1
    assert messages[0]["type"] == "ai"
    assert "Google Calendar is now connected" in messages[0]["content"]


@pytest.mark.anyio
async def test_refresh_updates_stored_token(api_services, oauth_client):
    api_services.registry.upsert(
        EMAIL, TokenGrant(access_token="access-token", refresh_token="refresh-token", expires_in=60)
    )

    async with _client() as client:
        response = await client.post("/api/auth/google/refresh", json={"userEmail": EMAIL})

    assert response.status_code == 200
    assert response.json()["refreshed"] is True
    assert oauth_client.refreshed == ["refresh-token"]
    assert api_services.registry.get(EMAIL).access_token == "access-token-2"


@pytest.mark.anyio
async def test_refresh_without_connection_reports_false(api_services, oauth_client):
    async with _client() as client:
        response = await client.post("/api/auth/google/refresh", json={"userEmail": EMAIL})

    assert response.status_code == 200
    assert response.json()["refreshed"] is False
    assert oauth_client.refreshed == []


@pytest.mark.anyio
async def test_refresh_rejected_by_google_is_bad_gateway(api_services, oauth_client):
    api_services.registry.upsert(
        EMAIL, TokenGrant(access_token="access-token", refresh_token="refresh-token")
    )
    oauth_client.fail_refresh = True

    async with _client() as client:
        response = await client.post("/api/auth/google/refresh", json={"userEmail": EMAIL})

    assert response.status_code == 502


@pytest.mark.anyio
async def test_revoke_marks_connection_inactive(api_services, oauth_client):
    api_services.registry.upsert(EMAIL, TokenGrant(access_token="access-token"))

    async with _client() as client:
        response = await client.post("/api/auth/google/revoke", json={"userEmail": EMAIL})
        missing = await client.post("/api/auth/google/revoke", json={})

    assert response.status_code == 200
    assert response.json()["revoked"] is True
    assert not api_services.registry.is_active(EMAIL)
    assert missing.status_code == 400


@pytest.mark.anyio
async def test_refresh_after_revoke_does_not_call_google(api_services, oauth_client):
    api_services.registry.upsert(
        EMAIL, TokenGrant(access_token="access-token", refresh_token="refresh-token", expires_in=60)
    )

    async with _client() as client:
        revoked = await client.post("/api/auth/google/revoke", json={"userEmail": EMAIL})
        response = await client.post("/api/auth/google/refresh", json={"userEmail": EMAIL})

    assert revoked.json()["revoked"] is True
    assert response.status_code == 200
    assert response.json()["refreshed"] is False
    assert oauth_client.refreshed == []
    assert api_services.registry.get(EMAIL).access_token == "access-token"
    assert not api_services.registry.is_active(EMAIL)
