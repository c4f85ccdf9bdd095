"""
Authorization-code flow orchestration: issuing state and completing callbacks.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from pydantic import SecretStr

from agent_dashboard.clients.oauth import OAuthProviderClient, OAuthStateEncoder
from agent_dashboard.clients.sqlite_store import SQLiteStateStore, SQLiteTokenStore
from agent_dashboard.core.config import OAuthSettings
from agent_dashboard.core.errors import (
    AuthorizationDenied,
    StateMismatch,
    UnsupportedProvider,
)
from agent_dashboard.core.providers import ProviderConfig, ProviderRegistry
from agent_dashboard.models.oauth import Provider, Service, TokenRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    authorization_url: str
    state: str
    provider: Provider
    service: Service
    expires_at: datetime


@dataclass(frozen=True)
class CompletedAuthorization:
    record: TokenRecord
    component_id: Optional[str]
    redirect_to: Optional[str]


class OAuthFlowService:
    """Start authorization requests and turn callbacks into stored tokens."""

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        clients: Mapping[Provider, OAuthProviderClient],
        state_encoder: OAuthStateEncoder,
        state_store: SQLiteStateStore,
        token_store: SQLiteTokenStore,
        oauth_settings: OAuthSettings,
    ) -> None:
        self._registry = registry
        self._clients = clients
        self._encoder = state_encoder
        self._states = state_store
        self._tokens = token_store
        self._state_ttl = timedelta(seconds=oauth_settings.state_ttl_seconds)

    def begin(
        self,
        *,
        provider: Provider | str,
        service: Service | str | None,
        user_id: str,
        component_id: str | None = None,
        redirect_to: str | None = None,
    ) -> AuthorizationRequest:
        """Issue a single-use state and build the provider consent URL."""
        config = self._configured(provider)
        resolved_service = config.resolve_service(service)

        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + self._state_ttl
        nonce = secrets.token_urlsafe(32)
        state = self._encoder.encode(
            {
                "nonce": nonce,
                "provider": config.provider.value,
                "service": resolved_service.value,
                "component_id": component_id,
                "user_id": user_id,
                "redirect_to": redirect_to,
                "issued_at": issued_at.isoformat(),
            }
        )
        self._states.purge_expired(now=issued_at)
        self._states.issue(nonce, provider=config.provider, expires_at=expires_at)

        authorization_url = self._client(config).build_authorization_url(
            service=resolved_service, state=state
        )
        logger.info(
            "Issued %s/%s authorization request for user %s",
            config.provider.value,
            resolved_service.value,
            user_id,
        )
        return AuthorizationRequest(
            authorization_url=authorization_url,
            state=state,
            provider=config.provider,
            service=resolved_service,
            expires_at=expires_at,
        )

    async def complete(
        self,
        *,
        provider: Provider | str,
        code: str,
        state: str,
        cookie_state: str | None = None,
    ) -> CompletedAuthorization:
        """
        Validate the echoed state, exchange the code, and upsert the token.

        The state is checked and consumed before the token endpoint is
        contacted; a failed exchange writes nothing.
        """
        config = self._configured(provider)
        state_data = await asyncio.to_thread(
            self._consume_state, config, state, cookie_state
        )

        user_id = state_data["user_id"]
        service = config.resolve_service(state_data.get("service"))

        issued_at = datetime.now(timezone.utc)
        tokens = await self._client(config).exchange_authorization_code(code)

        record = TokenRecord(
            user_id=user_id,
            provider=config.provider,
            service=service,
            access_token=SecretStr(tokens.access_token),
            refresh_token=SecretStr(tokens.refresh_token) if tokens.refresh_token else None,
            expires_at=issued_at + timedelta(seconds=tokens.expires_in),
            scope=tokens.scope or " ".join(config.scopes_for(service)),
            token_type=tokens.token_type,
            created_at=issued_at,
            updated_at=issued_at,
        )
        await asyncio.to_thread(self._tokens.put, record)
        logger.info(
            "Stored %s/%s token for user %s (expires in %ss)",
            config.provider.value,
            service.value,
            user_id,
            tokens.expires_in,
        )
        return CompletedAuthorization(
            record=record,
            component_id=state_data.get("component_id"),
            redirect_to=state_data.get("redirect_to"),
        )

    def deny(
        self,
        *,
        provider: Provider | str,
        error: str,
        state: str | None = None,
        cookie_state: str | None = None,
    ) -> None:
        """Discard the pending state after the provider reported ``error``."""
        if state:
            try:
                self._consume_state(self._registry.get(provider), state, cookie_state)
            except StateMismatch as exc:
                logger.info("Ignoring unusable state on denied callback: %s", exc.message)
        logger.info("Provider %s denied authorization: %s", provider, error)
        raise AuthorizationDenied(f"Authorization was not granted: {error}")

    def redirect_target(self, state: str | None) -> str | None:
        """Return the signed `redirect_to` carried by ``state``, if it verifies."""
        if not state:
            return None
        try:
            target = self._encoder.decode(state).get("redirect_to")
        except StateMismatch:
            return None
        return target if isinstance(target, str) else None

    def _consume_state(
        self, config: ProviderConfig, state: str, cookie_state: str | None
    ) -> dict:
        state_data = self._encoder.decode(state)

        if state_data.get("provider") != config.provider.value:
            raise StateMismatch("OAuth state was issued for a different provider.")
        if cookie_state is not None and not hmac.compare_digest(
            cookie_state.encode("utf-8"), state.encode("utf-8")
        ):
            raise StateMismatch("OAuth state does not match this browser session.")

        issued_at_raw = state_data.get("issued_at")
        try:
            issued_at = datetime.fromisoformat(issued_at_raw)
        except (TypeError, ValueError) as exc:
            raise StateMismatch("Invalid issued_at in state token.") from exc
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - issued_at > self._state_ttl:
            raise StateMismatch("OAuth state token has expired.")

        if not state_data.get("user_id"):
            raise StateMismatch("Missing user identifier in state token.")

        nonce = state_data.get("nonce")
        if not nonce or not self._states.consume(nonce):
            raise StateMismatch("OAuth state has already been used or has expired.")
        return state_data

    def _configured(self, provider: Provider | str) -> ProviderConfig:
        config = self._registry.get(provider)
        if not config.configured:
            raise UnsupportedProvider(
                f"Provider '{config.provider.value}' is not configured."
            )
        return config

    def _client(self, config: ProviderConfig) -> OAuthProviderClient:
        client = self._clients.get(config.provider)
        if client is None:
            raise UnsupportedProvider(f"Unsupported provider: {config.provider.value}")
        return client


__all__ = ["AuthorizationRequest", "CompletedAuthorization", "OAuthFlowService"]
