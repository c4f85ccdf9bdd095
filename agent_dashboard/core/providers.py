"""
Static OAuth provider table.

``build_provider_registry`` combines the scope table with the client
registration from settings into an immutable registry, built once per
process and handed to the services that need it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from agent_dashboard.core.config import AppSettings
from agent_dashboard.core.errors import UnsupportedProvider
from agent_dashboard.models.oauth import Provider, Service

_GOOGLE_API = "https://www.googleapis.com/auth"

GOOGLE_SCOPES: Mapping[Service, tuple[str, ...]] = MappingProxyType(
    {
        Service.GMAIL: (
            f"{_GOOGLE_API}/gmail.readonly",
            f"{_GOOGLE_API}/gmail.send",
            f"{_GOOGLE_API}/gmail.compose",
            f"{_GOOGLE_API}/gmail.labels",
        ),
        Service.CALENDAR: (
            f"{_GOOGLE_API}/calendar",
            f"{_GOOGLE_API}/calendar.events",
        ),
        Service.DRIVE: (
            f"{_GOOGLE_API}/drive.readonly",
            f"{_GOOGLE_API}/drive.file",
        ),
    }
)

MICROSOFT_SCOPES: Mapping[Service, tuple[str, ...]] = MappingProxyType(
    {
        Service.MAIL: (
            "https://outlook.office.com/IMAP.AccessAsUser.All",
            "https://outlook.office.com/POP.AccessAsUser.All",
            "https://outlook.office.com/SMTP.Send",
            "offline_access",
            "openid",
            "profile",
            "email",
        ),
    }
)

ZOOM_SCOPES: Mapping[Service, tuple[str, ...]] = MappingProxyType(
    {
        Service.MEETING: ("meeting:read", "meeting:write", "user:read", "user:write"),
    }
)


@dataclass(frozen=True)
class ProviderConfig:
    """Everything needed to drive one provider's authorization-code flow."""

    provider: Provider
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    authorize_url: str
    token_url: str
    scopes: Mapping[Service, tuple[str, ...]]
    extra_authorize_params: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    # Zoom expects client credentials in an Authorization: Basic header.
    token_auth_basic: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def resolve_service(self, service: Service | str | None) -> Service:
        """Map a requested service onto the table, defaulting single-service providers."""
        if service is None or service == "":
            if len(self.scopes) == 1:
                return next(iter(self.scopes))
            raise UnsupportedProvider(
                f"A service is required for provider '{self.provider.value}'."
            )
        try:
            resolved = Service(service)
        except ValueError as exc:
            raise UnsupportedProvider(f"Unsupported service: {service}") from exc
        if resolved not in self.scopes:
            raise UnsupportedProvider(
                f"Service '{resolved.value}' is not available for provider "
                f"'{self.provider.value}'."
            )
        return resolved

    def scopes_for(self, service: Service) -> tuple[str, ...]:
        return self.scopes[self.resolve_service(service)]


class ProviderRegistry:
    """Read-only lookup of provider configurations."""

    def __init__(self, configs: Mapping[Provider, ProviderConfig]) -> None:
        self._configs = MappingProxyType(dict(configs))

    def get(self, provider: Provider | str) -> ProviderConfig:
        try:
            key = provider if isinstance(provider, Provider) else Provider(provider.lower())
        except ValueError as exc:
            raise UnsupportedProvider(f"Unsupported provider: {provider}") from exc
        config = self._configs.get(key)
        if config is None:
            raise UnsupportedProvider(f"Unsupported provider: {provider}")
        return config

    def __iter__(self):
        return iter(self._configs.values())

    def __len__(self) -> int:
        return len(self._configs)


def build_provider_registry(settings: AppSettings) -> ProviderRegistry:
    """Build the provider registry from application settings."""
    tenant = settings.microsoft.tenant_id or "common"
    microsoft_base = f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
    configs = {
        Provider.GOOGLE: ProviderConfig(
            provider=Provider.GOOGLE,
            client_id=settings.google.client_id,
            client_secret=settings.google.client_secret,
            redirect_uri=settings.google.redirect_uri,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            scopes=GOOGLE_SCOPES,
            extra_authorize_params=MappingProxyType(
                {
                    "access_type": "offline",
                    "include_granted_scopes": "true",
                    "prompt": "consent",
                }
            ),
        ),
        Provider.MICROSOFT: ProviderConfig(
            provider=Provider.MICROSOFT,
            client_id=settings.microsoft.client_id,
            client_secret=settings.microsoft.client_secret,
            redirect_uri=settings.microsoft.redirect_uri,
            authorize_url=f"{microsoft_base}/authorize",
            token_url=f"{microsoft_base}/token",
            scopes=MICROSOFT_SCOPES,
            extra_authorize_params=MappingProxyType({"prompt": "consent"}),
        ),
        Provider.ZOOM: ProviderConfig(
            provider=Provider.ZOOM,
            client_id=settings.zoom.client_id,
            client_secret=settings.zoom.client_secret,
            redirect_uri=settings.zoom.redirect_uri,
            authorize_url="https://zoom.us/oauth/authorize",
            token_url="https://zoom.us/oauth/token",
            scopes=ZOOM_SCOPES,
            token_auth_basic=True,
        ),
    }
    return ProviderRegistry(configs)


__all__ = [
    "GOOGLE_SCOPES",
    "MICROSOFT_SCOPES",
    "ZOOM_SCOPES",
    "ProviderConfig",
    "ProviderRegistry",
    "build_provider_registry",
]
