from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone

import pytest

from smartplan.clients.google_auth import TokenGrant
from smartplan.clients.record_store import InMemoryStore
from smartplan.core.errors import TokenExchangeFailed
from smartplan.services.connection_registry import SORT_KEY, ConnectionRegistry, partition_key
from smartplan.services.google_tokens import GoogleTokenService
from smartplan.services.token_cipher import TokenCipherService

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class DummyOAuthClient:
    def __init__(self, *, refreshed_token: str = "refreshed-access", error: Exception | None = None) -> None:
        self.refreshed_token = refreshed_token
        self.error = error
        self.calls: list[str] = []

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        self.calls.append(refresh_token)
        if self.error is not None:
            raise self.error
        return TokenGrant(
            access_token=self.refreshed_token, refresh_token=refresh_token, expires_in=3600
        )


@pytest.mark.asyncio
async def test_refresh_connection_updates_encrypted_storage() -> None:
    store = InMemoryStore()
    cipher = TokenCipherService(secret="secret-key")
    registry = ConnectionRegistry(store, token_cipher=cipher, clock=lambda: NOW)
    oauth_client = DummyOAuthClient()

    registry.upsert(
        "123@example.com",
        TokenGrant(access_token="initial-token", refresh_token="refresh-token", expires_in=-60),
    )
    service = GoogleTokenService(registry=registry, oauth_client=oauth_client)

    assert await service.refresh_connection("123@example.com") is True

    assert oauth_client.calls == ["refresh-token"]
    stored = store.get_item(partition_key=partition_key("123@example.com"), sort_key=SORT_KEY)
    assert stored is not None
    assert cipher.decrypt(stored["access_token"]) == oauth_client.refreshed_token
    record = registry.get("123@example.com")
    assert record.expires_at == NOW + timedelta(seconds=3600)
    assert registry.is_active("123@example.com")


@pytest.mark.asyncio
async def test_refresh_connection_without_refresh_token_skips_google() -> None:
    registry = ConnectionRegistry(InMemoryStore(), clock=lambda: NOW)
    oauth_client = DummyOAuthClient()
    registry.upsert("abc@example.com", TokenGrant(access_token="legacy-access"))
    service = GoogleTokenService(registry=registry, oauth_client=oauth_client)

    assert await service.refresh_connection("abc@example.com") is False
    assert await service.refresh_connection("nobody@example.com") is False
    assert oauth_client.calls == []


@pytest.mark.asyncio
async def test_refresh_connection_propagates_rejection() -> None:
    registry = ConnectionRegistry(InMemoryStore(), clock=lambda: NOW)
    registry.upsert(
        "abc@example.com", TokenGrant(access_token="legacy-access", refresh_token="stale")
    )
    service = GoogleTokenService(
        registry=registry, oauth_client=DummyOAuthClient(error=TokenExchangeFailed("invalid_grant"))
    )

    with pytest.raises(TokenExchangeFailed):
        await service.refresh_connection("abc@example.com")
    assert registry.get("abc@example.com").access_token == "legacy-access"


@pytest.mark.asyncio
async def test_refresh_connection_after_revoke_skips_google() -> None:
    registry = ConnectionRegistry(InMemoryStore(), clock=lambda: NOW)
    oauth_client = DummyOAuthClient()
    registry.upsert(
        "abc@example.com",
        TokenGrant(access_token="revoked-access", refresh_token="refresh-token", expires_in=-60),
    )
    registry.revoke("abc@example.com")
    service = GoogleTokenService(registry=registry, oauth_client=oauth_client)

    assert await service.refresh_connection("abc@example.com") is False
    assert oauth_client.calls == []
    assert registry.get("abc@example.com").access_token == "revoked-access"
    assert not registry.is_active("abc@example.com")
