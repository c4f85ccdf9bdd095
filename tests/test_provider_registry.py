try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlsplit

import pytest

from agent_dashboard.clients import OAuthProviderClient
from agent_dashboard.core.errors import UnsupportedProvider
from agent_dashboard.models.oauth import Provider, Service


@pytest.mark.parametrize(
    ("provider", "service", "expected"),
    [
        (
            "google",
            "gmail",
            (
                "https://www.googleapis.com/auth/gmail.readonly",
                "https://www.googleapis.com/auth/gmail.send",
                "https://www.googleapis.com/auth/gmail.compose",
                "https://www.googleapis.com/auth/gmail.labels",
            ),
        ),
        (
            "google",
            "calendar",
            (
                "https://www.googleapis.com/auth/calendar",
                "https://www.googleapis.com/auth/calendar.events",
            ),
        ),
        (
            "google",
            "drive",
            (
                "https://www.googleapis.com/auth/drive.readonly",
                "https://www.googleapis.com/auth/drive.file",
            ),
        ),
        (
            "zoom",
            "meeting",
            ("meeting:read", "meeting:write", "user:read", "user:write"),
        ),
    ],
)
def test_scopes_match_table(registry, provider, service, expected):
    assert registry.get(provider).scopes_for(Service(service)) == expected


def test_microsoft_mail_requests_offline_access(registry):
    scopes = registry.get(Provider.MICROSOFT).scopes_for(Service.MAIL)
    assert "offline_access" in scopes
    assert "https://outlook.office.com/SMTP.Send" in scopes


@pytest.mark.parametrize(
    ("provider", "service"),
    [("google", "meeting"), ("zoom", "gmail"), ("microsoft", "drive"), ("google", "fax")],
)
def test_unsupported_pairs_are_rejected(registry, provider, service):
    with pytest.raises(UnsupportedProvider):
        registry.get(provider).resolve_service(service)


def test_unknown_provider_is_rejected(registry):
    with pytest.raises(UnsupportedProvider):
        registry.get("dropbox")


def test_single_service_provider_defaults_service(registry):
    assert registry.get("zoom").resolve_service(None) is Service.MEETING
    with pytest.raises(UnsupportedProvider):
        registry.get("google").resolve_service(None)


def test_provider_lookup_is_case_insensitive(registry):
    assert registry.get("Google").provider is Provider.GOOGLE


def test_google_authorization_url_requests_offline_consent(registry):
    client = OAuthProviderClient(registry.get(Provider.GOOGLE))
    url = client.build_authorization_url(service=Service.CALENDAR, state="opaque")

    parsed = urlsplit(url)
    params = parse_qs(parsed.query)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
        "https://accounts.google.com/o/oauth2/v2/auth"
    )
    assert params["response_type"] == ["code"]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["state"] == ["opaque"]
    assert params["scope"] == [
        "https://www.googleapis.com/auth/calendar "
        "https://www.googleapis.com/auth/calendar.events"
    ]


def test_microsoft_urls_use_configured_tenant(settings):
    from agent_dashboard.core.providers import build_provider_registry

    settings.microsoft.tenant_id = "contoso"
    config = build_provider_registry(settings).get("microsoft")
    assert config.token_url == (
        "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"
    )
