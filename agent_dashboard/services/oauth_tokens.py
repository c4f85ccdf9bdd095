"""
Read-side helpers for persisted OAuth tokens: status, debug and refresh.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Mapping

from google.oauth2.credentials import Credentials
from pydantic import SecretStr

from agent_dashboard.clients.oauth import OAuthProviderClient
from agent_dashboard.clients.sqlite_store import SQLiteTokenStore
from agent_dashboard.core.errors import ReauthenticationRequired, UnsupportedProvider
from agent_dashboard.core.providers import ProviderRegistry
from agent_dashboard.models.oauth import Provider, Service, TokenRecord
from agent_dashboard.schemas.auth import AuthStatus, TokenDebugInfo
from agent_dashboard.services.token_cipher import TokenDecryptionError

logger = logging.getLogger(__name__)


class OAuthTokenService:
    """Manages access to persisted OAuth tokens."""

    _REFRESH_WINDOW = timedelta(minutes=5)

    def __init__(
        self,
        *,
        token_store: SQLiteTokenStore,
        registry: ProviderRegistry,
        clients: Mapping[Provider, OAuthProviderClient],
    ) -> None:
        self._tokens = token_store
        self._registry = registry
        self._clients = clients

    def status(
        self,
        *,
        user_id: str | None,
        provider: Provider | str,
        service: Service | str | None,
    ) -> AuthStatus:
        """
        Report whether a non-expired token exists.

        Expired tokens are reported as such and left untouched; refreshing is
        the job of ``get_access_token``.
        """
        config = self._registry.get(provider)
        resolved = config.resolve_service(service)
        if not user_id:
            return AuthStatus(authenticated=False, reason="not_found")

        try:
            record = self._tokens.get(user_id, config.provider, resolved)
        except TokenDecryptionError:
            logger.warning(
                "Stored %s/%s token for user %s could not be decrypted",
                config.provider.value,
                resolved.value,
                user_id,
            )
            return AuthStatus(authenticated=False, reason="invalid")

        if record is None:
            return AuthStatus(authenticated=False, reason="not_found")
        if record.is_expired():
            return AuthStatus(authenticated=False, reason="expired", scope=record.scope)
        return AuthStatus(
            authenticated=True,
            scope=record.scope,
            expires_in_seconds=record.seconds_remaining(),
        )

    def debug(
        self,
        *,
        user_id: str | None,
        provider: Provider | str,
        service: Service | str | None,
    ) -> TokenDebugInfo:
        config = self._registry.get(provider)
        resolved = config.resolve_service(service)
        label = f"{config.provider.value}/{resolved.value}"
        if not user_id:
            return TokenDebugInfo(token_exists=False, message=f"No token found for {label}")

        try:
            record = self._tokens.get(user_id, config.provider, resolved)
        except TokenDecryptionError:
            return TokenDebugInfo(
                token_exists=True, message=f"Stored token for {label} is unreadable"
            )
        if record is None:
            return TokenDebugInfo(token_exists=False, message=f"No token found for {label}")

        expired = record.is_expired()
        logger.debug(
            "Token debug for %s user %s: expired=%s refresh=%s",
            label,
            user_id,
            expired,
            record.refresh_token is not None,
        )
        return TokenDebugInfo(
            token_exists=True,
            is_expired=expired,
            access_token_exists=bool(record.access_token.get_secret_value()),
            refresh_token_exists=record.refresh_token is not None,
            expires_in_seconds=None if expired else record.seconds_remaining(),
            scope=record.scope,
        )

    async def get_access_token(
        self,
        *,
        user_id: str,
        provider: Provider | str,
        service: Service | str | None,
    ) -> TokenRecord:
        """Return a usable token record, refreshing it when close to expiry."""
        config = self._registry.get(provider)
        resolved = config.resolve_service(service)
        try:
            record = await asyncio.to_thread(
                self._tokens.get, user_id, config.provider, resolved
            )
        except TokenDecryptionError as exc:
            raise ReauthenticationRequired(
                "Stored token is unreadable; re-authentication required."
            ) from exc
        if record is None:
            raise ReauthenticationRequired(
                f"No {config.provider.value} {resolved.value} token stored for user."
            )

        now = datetime.now(timezone.utc)
        if record.expires_at > now + self._REFRESH_WINDOW:
            return record
        if record.refresh_token is None:
            raise ReauthenticationRequired(
                "Token expired and no refresh token is available; re-authentication required."
            )

        client = self._clients.get(config.provider)
        if client is None:
            raise UnsupportedProvider(f"Unsupported provider: {config.provider.value}")

        refreshed_at = datetime.now(timezone.utc)
        tokens = await client.refresh_token(record.refresh_token.get_secret_value())
        refreshed = record.model_copy(
            update={
                "access_token": SecretStr(tokens.access_token),
                "refresh_token": (
                    SecretStr(tokens.refresh_token)
                    if tokens.refresh_token
                    else record.refresh_token
                ),
                "expires_at": refreshed_at + timedelta(seconds=tokens.expires_in),
                "scope": tokens.scope or record.scope,
                "token_type": tokens.token_type,
                "updated_at": refreshed_at,
            }
        )
        await asyncio.to_thread(self._tokens.put, refreshed)
        logger.info(
            "Refreshed %s/%s token for user %s",
            config.provider.value,
            resolved.value,
            user_id,
        )
        return refreshed

    async def get_google_credentials(
        self, *, user_id: str, service: Service | str
    ) -> Credentials:
        """Build ``google-auth`` credentials for downstream Google API clients."""
        record = await self.get_access_token(
            user_id=user_id, provider=Provider.GOOGLE, service=service
        )
        config = self._registry.get(Provider.GOOGLE)
        return Credentials(
            token=record.access_token.get_secret_value(),
            refresh_token=(
                record.refresh_token.get_secret_value() if record.refresh_token else None
            ),
            token_uri=config.token_url,
            client_id=config.client_id,
            client_secret=config.client_secret,
            scopes=record.scope.split() or list(config.scopes_for(record.service)),
            expiry=record.expires_at.astimezone(timezone.utc).replace(tzinfo=None),
        )


__all__ = ["OAuthTokenService"]
