try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from pydantic import SecretStr

from agent_dashboard import dependencies
from agent_dashboard.clients import OAuthProviderClient, OAuthStateEncoder
from agent_dashboard.core.config import get_settings
from agent_dashboard.main import app
from agent_dashboard.models.oauth import Provider, Service, TokenRecord
from agent_dashboard.services import OAuthFlowService, OAuthTokenService
from agent_dashboard.utils.http import RetryConfig

pytestmark = pytest.mark.anyio("asyncio")

SESSION_ENCODER = OAuthStateEncoder("session-secret")


class DummyTokenEndpoint:
    def __init__(self) -> None:
        self.codes: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.codes.extend(parse_qs(request.content.decode("utf-8")).get("code", []))
        return httpx.Response(
            200,
            json={"access_token": "access-xyz", "refresh_token": "refresh-xyz", "expires_in": 3600},
        )


@pytest.fixture()
def oauth_overrides(registry, state_store, token_store):
    endpoint = DummyTokenEndpoint()
    base_settings = get_settings().model_copy(deep=True)
    base_settings.frontend_base_url = None

    transport = httpx.MockTransport(endpoint)
    clients = MappingProxyType(
        {
            config.provider: OAuthProviderClient(
                config,
                retry_config=RetryConfig(attempts=1, base_delay_seconds=0),
                transport=transport,
            )
            for config in registry
        }
    )

    def flow_service() -> OAuthFlowService:
        return OAuthFlowService(
            registry=registry,
            clients=clients,
            state_encoder=OAuthStateEncoder("route-secret"),
            state_store=state_store,
            token_store=token_store,
            oauth_settings=base_settings.oauth,
        )

    def token_service() -> OAuthTokenService:
        return OAuthTokenService(token_store=token_store, registry=registry, clients=clients)

    app.dependency_overrides.update(
        {
            dependencies.get_oauth_flow_service: flow_service,
            dependencies.get_oauth_token_service: token_service,
            dependencies.get_session_encoder: lambda: SESSION_ENCODER,
            dependencies.get_app_settings: lambda: base_settings,
        }
    )

    yield endpoint, token_store, base_settings

    app.dependency_overrides.clear()


def _client(user_id: str | None = None) -> httpx.AsyncClient:
    cookies = {}
    if user_id is not None:
        cookies["user_id"] = SESSION_ENCODER.encode({"user_id": user_id})
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        cookies=cookies,
    )


async def _start(client: httpx.AsyncClient, **params) -> str:
    response = await client.get(
        "/api/auth/google", params={"redirect": "false", **params}
    )
    assert response.status_code == 200
    return response.json()["state"]


def _set_cookie(response: httpx.Response, name: str) -> dict[str, str]:
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            first, *attributes = [part.strip() for part in header.split(";")]
            parsed = {"value": first.split("=", 1)[1].strip('"')}
            for attribute in attributes:
                key, _, value = attribute.partition("=")
                parsed[key.lower()] = value
            return parsed
    raise AssertionError(f"no {name} cookie set")


def _victim_record() -> TokenRecord:
    return TokenRecord(
        user_id="victim",
        provider=Provider.GOOGLE,
        service=Service.CALENDAR,
        access_token=SecretStr("victim-access"),
        refresh_token=SecretStr("victim-refresh"),
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scope="https://www.googleapis.com/auth/calendar",
    )


async def test_health():
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_start_redirects_to_provider_and_sets_state_cookie(oauth_overrides):
    _, _, settings = oauth_overrides

    async with _client("user-1") as client:
        response = await client.get("/api/auth/google", params={"service": "calendar"})

    assert response.status_code == 302
    location = urlsplit(response.headers["location"])
    assert location.netloc == "accounts.google.com"
    state = parse_qs(location.query)["state"][0]

    cookie = _set_cookie(response, "oauth_state")
    assert cookie["value"] == state
    assert "httponly" in cookie
    assert cookie["path"] == "/"
    assert int(cookie["max-age"]) == settings.oauth.state_ttl_seconds
    assert 0 < int(cookie["max-age"]) <= 3600


async def test_start_issues_signed_anonymous_session(oauth_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/google", params={"service": "gmail"})

    session = _set_cookie(response, "user_id")
    user_id = SESSION_ENCODER.decode(session["value"])["user_id"]
    assert user_id.startswith("anon-")
    assert "httponly" in session


async def test_start_returns_json_when_redirect_disabled(oauth_overrides):
    async with _client("user-1") as client:
        response = await client.get("/api/auth/zoom", params={"redirect": "false"})

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://zoom.us/oauth/authorize?")
    assert data["state"]


async def test_start_rejects_unsupported_pair(oauth_overrides):
    async with _client("user-1") as client:
        response = await client.get("/api/auth/google", params={"service": "meeting"})

    assert response.status_code == 400
    assert "error" in response.json()


async def test_start_rejects_foreign_redirect_target(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google",
            params={"service": "gmail", "redirect_to": "https://evil.example.net/"},
        )

    assert response.status_code == 400


async def test_callback_returns_json_and_stores_token(oauth_overrides):
    endpoint, token_store, _ = oauth_overrides

    async with _client("user-1") as client:
        state = await _start(client, service="calendar", componentId="node-3")
        callback = await client.get(
            "/api/auth/google/callback", params={"state": state, "code": "abc"}
        )
        status = await client.get(
            "/api/auth/status", params={"provider": "google", "service": "calendar"}
        )

    assert callback.status_code == 200
    assert callback.json() == {
        "success": True,
        "message": "Authentication successful",
        "provider": "google",
        "service": "calendar",
        "componentId": "node-3",
        "redirectTo": None,
    }
    session = _set_cookie(callback, "user_id")
    assert SESSION_ENCODER.decode(session["value"]) == {"user_id": "user-1"}
    assert endpoint.codes == ["abc"]
    assert token_store.exists("user-1", Provider.GOOGLE, Service.CALENDAR)

    body = status.json()
    assert body["authenticated"] is True
    assert "access-xyz" not in status.text


async def test_query_user_id_cannot_target_another_users_token(oauth_overrides):
    _, token_store, _ = oauth_overrides
    token_store.put(_victim_record())

    async with _client() as attacker:
        state = await _start(attacker, service="calendar", user_id="victim")
        callback = await attacker.get(
            "/api/auth/google/callback", params={"state": state, "code": "abc"}
        )
        status = await attacker.get(
            "/api/auth/status", params={"service": "calendar", "user_id": "victim"}
        )

    assert callback.status_code == 200
    victim = token_store.get("victim", Provider.GOOGLE, Service.CALENDAR)
    assert victim.access_token.get_secret_value() == "victim-access"
    assert token_store.count() == 2

    attacker_id = SESSION_ENCODER.decode(_set_cookie(callback, "user_id")["value"])["user_id"]
    assert attacker_id.startswith("anon-")
    assert token_store.exists(attacker_id, Provider.GOOGLE, Service.CALENDAR)
    # The attacker's status reflects their own token, never the victim's.
    assert status.json()["authenticated"] is True


async def test_unsigned_session_cookie_is_ignored(oauth_overrides):
    _, token_store, _ = oauth_overrides
    token_store.put(_victim_record())

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        cookies={"user_id": "victim"},
    ) as client:
        status = await client.get("/api/auth/status", params={"service": "calendar"})
        debug = await client.get("/api/auth/debug", params={"service": "calendar"})

    assert status.json() == {"authenticated": False, "reason": "not_found"}
    assert debug.json()["tokenExists"] is False


async def test_callback_redirects_browsers_to_frontend(oauth_overrides):
    _, _, settings = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/builder"

    async with _client("user-2") as client:
        state = await _start(client, service="gmail", componentId="n1")
        callback = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "abc"},
            headers={"accept": "text/html"},
        )

    assert callback.status_code == 302
    location = urlsplit(callback.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == (
        "https://app.example.com/builder"
    )
    assert parse_qs(location.query) == {
        "connected": ["google"],
        "service": ["gmail"],
        "componentId": ["n1"],
    }


async def test_failed_browser_callback_returns_to_initiating_page(oauth_overrides):
    async with _client("user-2") as starter:
        state = await _start(starter, service="gmail", redirect_to="/workflows/42")

    async with _client("user-2") as client:
        response = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "abc"},
            headers={"accept": "text/html", "cookie": "oauth_state=someone-elses-state"},
        )

    assert response.status_code == 302
    location = urlsplit(response.headers["location"])
    assert location.path == "/workflows/42"
    assert parse_qs(location.query) == {"error": ["state_mismatch"]}


async def test_callback_with_bad_state_does_not_exchange(oauth_overrides):
    endpoint, token_store, _ = oauth_overrides

    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback", params={"state": "forged", "code": "abc"}
        )

    assert response.status_code == 400
    assert "error" in response.json()
    assert endpoint.codes == []
    assert token_store.count() == 0


async def test_callback_state_must_match_cookie(oauth_overrides):
    endpoint, _, _ = oauth_overrides

    async with _client("user-1") as starter:
        state = await _start(starter, service="gmail")

    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "abc"},
            headers={"cookie": "oauth_state=someone-elses-state"},
        )

    assert response.status_code == 400
    assert endpoint.codes == []


async def test_callback_reports_provider_error(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback", params={"error": "access_denied"}
        )

    assert response.status_code == 400
    assert "access_denied" in response.json()["error"]


async def test_callback_requires_code_and_state(oauth_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/google/callback", params={"code": "abc"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required parameters: code and state."}


async def test_post_callback_completes_exchange(oauth_overrides):
    _, token_store, _ = oauth_overrides

    async with _client("user-5") as client:
        state = await _start(client, service="drive")
        response = await client.post(
            "/api/auth/google/callback", json={"code": "abc", "state": state}
        )

    assert response.status_code == 200
    assert response.json()["service"] == "drive"
    assert token_store.exists("user-5", Provider.GOOGLE, Service.DRIVE)


async def test_failed_post_callback_clears_state_cookie(oauth_overrides):
    endpoint, _, _ = oauth_overrides

    async with _client("user-5") as client:
        response = await client.post(
            "/api/auth/google/callback", json={"code": "abc", "state": "forged"}
        )

    assert response.status_code == 400
    assert "error" in response.json()
    cleared = _set_cookie(response, "oauth_state")
    assert cleared["value"] == ""
    assert int(cleared["max-age"]) == 0
    assert endpoint.codes == []


async def test_status_without_token(oauth_overrides):
    async with _client("nobody") as client:
        response = await client.get("/api/auth/status", params={"service": "gmail"})

    assert response.status_code == 200
    assert response.json() == {"authenticated": False, "reason": "not_found"}


async def test_debug_defaults_to_gmail(oauth_overrides):
    async with _client("nobody") as client:
        response = await client.get("/api/auth/debug")

    assert response.status_code == 200
    assert response.json() == {
        "tokenExists": False,
        "message": "No token found for google/gmail",
    }


async def test_validation_errors_use_error_body():
    async with _client() as client:
        response = await client.post("/api/deploy/discord", json={"botId": "b1"})

    assert response.status_code == 400
    assert "token" in response.json()["error"]
