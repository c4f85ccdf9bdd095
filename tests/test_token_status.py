try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from urllib.parse import parse_qs

import httpx
import pytest
from pydantic import SecretStr

from agent_dashboard.clients import OAuthProviderClient, SQLiteTokenStore
from agent_dashboard.core.errors import ReauthenticationRequired
from agent_dashboard.models.oauth import Provider, Service, TokenRecord
from agent_dashboard.services import OAuthTokenService, TokenCipherService
from agent_dashboard.utils.http import RetryConfig


def _store_token(store, *, seconds: float, refresh: str | None = "refresh-1", **overrides):
    fields = dict(
        user_id="user-1",
        provider=Provider.GOOGLE,
        service=Service.GMAIL,
        access_token=SecretStr("access-1"),
        refresh_token=SecretStr(refresh) if refresh else None,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=seconds),
        scope="https://www.googleapis.com/auth/gmail.readonly",
    )
    fields.update(overrides)
    record = TokenRecord(**fields)
    store.put(record)
    return record


def _service(registry, token_store, handler=None) -> OAuthTokenService:
    transport = httpx.MockTransport(handler or (lambda request: httpx.Response(500)))
    retry = RetryConfig(attempts=1, base_delay_seconds=0)
    clients = MappingProxyType(
        {
            config.provider: OAuthProviderClient(
                config, retry_config=retry, transport=transport
            )
            for config in registry
        }
    )
    return OAuthTokenService(token_store=token_store, registry=registry, clients=clients)


def test_status_reports_valid_token(registry, token_store):
    _store_token(token_store, seconds=120)

    status = _service(registry, token_store).status(
        user_id="user-1", provider="google", service="gmail"
    )

    assert status.authenticated is True
    assert status.reason is None
    assert 115 <= status.expires_in_seconds <= 120


def test_status_reports_token_expired_a_second_ago(registry, token_store):
    _store_token(token_store, seconds=-1)

    status = _service(registry, token_store).status(
        user_id="user-1", provider="google", service="gmail"
    )

    assert status.authenticated is False
    assert status.reason == "expired"


def test_status_reports_token_expiring_soon_as_valid(registry, token_store):
    _store_token(token_store, seconds=5)

    status = _service(registry, token_store).status(
        user_id="user-1", provider="google", service="gmail"
    )

    assert status.authenticated is True


def test_status_for_missing_token_or_user(registry, token_store):
    service = _service(registry, token_store)

    assert service.status(user_id="nobody", provider="google", service="gmail").reason == (
        "not_found"
    )
    assert service.status(user_id=None, provider="google", service="gmail").reason == (
        "not_found"
    )


def test_status_never_refreshes_expired_token(registry, token_store):
    calls: list[httpx.Request] = []

    def record_call(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"access_token": "new"})

    _store_token(token_store, seconds=-60)
    _service(registry, token_store, record_call).status(
        user_id="user-1", provider="google", service="gmail"
    )

    assert calls == []


def test_status_reports_invalid_when_secret_rotated(registry, token_store, db_path):
    _store_token(token_store, seconds=600)
    rotated = SQLiteTokenStore(db_path, cipher=TokenCipherService(secret="rotated"))

    status = _service(registry, rotated).status(
        user_id="user-1", provider="google", service="gmail"
    )

    assert status.authenticated is False
    assert status.reason == "invalid"


def test_debug_never_exposes_token_values(registry, token_store):
    _store_token(token_store, seconds=600)

    info = _service(registry, token_store).debug(
        user_id="user-1", provider="google", service="gmail"
    )
    dumped = info.model_dump_json(by_alias=True)

    assert info.token_exists is True
    assert info.refresh_token_exists is True
    assert "access-1" not in dumped
    assert "refresh-1" not in dumped
    assert '"tokenExists":true' in dumped


@pytest.mark.anyio
async def test_get_access_token_returns_fresh_token_untouched(registry, token_store):
    _store_token(token_store, seconds=3600)

    record = await _service(registry, token_store).get_access_token(
        user_id="user-1", provider="google", service="gmail"
    )

    assert record.access_token.get_secret_value() == "access-1"


@pytest.mark.anyio
async def test_get_access_token_refreshes_near_expiry(registry, token_store):
    requests: list[httpx.Request] = []

    def refresh(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"access_token": "access-2", "expires_in": 1800})

    _store_token(token_store, seconds=60)

    record = await _service(registry, token_store, refresh).get_access_token(
        user_id="user-1", provider="google", service="gmail"
    )

    form = parse_qs(requests[0].content.decode("utf-8"))
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["refresh-1"]
    assert record.access_token.get_secret_value() == "access-2"
    assert record.refresh_token.get_secret_value() == "refresh-1"

    stored = token_store.get("user-1", Provider.GOOGLE, Service.GMAIL)
    assert stored.access_token.get_secret_value() == "access-2"
    assert 1790 <= stored.seconds_remaining() <= 1800


@pytest.mark.anyio
async def test_get_access_token_without_refresh_token_requires_reauth(registry, token_store):
    _store_token(token_store, seconds=-10, refresh=None)

    with pytest.raises(ReauthenticationRequired):
        await _service(registry, token_store).get_access_token(
            user_id="user-1", provider="google", service="gmail"
        )


@pytest.mark.anyio
async def test_get_google_credentials(registry, token_store):
    _store_token(token_store, seconds=3600)

    credentials = await _service(registry, token_store).get_google_credentials(
        user_id="user-1", service="gmail"
    )

    assert credentials.token == "access-1"
    assert credentials.refresh_token == "refresh-1"
    assert credentials.client_id == "test-google-client"
    assert credentials.token_uri == "https://oauth2.googleapis.com/token"
    assert credentials.scopes == ["https://www.googleapis.com/auth/gmail.readonly"]
    assert credentials.valid
