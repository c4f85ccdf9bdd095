"""
OAuth2 authorization-code utilities.

These helpers sign state values and talk to provider authorization and
token endpoints for the configured providers.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from hashlib import sha256
from typing import Any, Dict
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from agent_dashboard.core.errors import ExchangeFailed, StateMismatch, UpstreamUnavailable
from agent_dashboard.core.providers import ProviderConfig
from agent_dashboard.models.oauth import Service
from agent_dashboard.schemas.providers import (
    ProviderErrorResponse,
    ProviderTokenResponse,
)
from agent_dashboard.utils.http import (
    RetryConfig,
    is_upstream_failure,
    request_with_retry,
)

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    _SIGNATURE_LENGTH = 32

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise StateMismatch("Malformed OAuth state.") from exc
        signature, serialized = (
            decoded[: self._SIGNATURE_LENGTH],
            decoded[self._SIGNATURE_LENGTH :],
        )
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise StateMismatch("Invalid OAuth state signature.")
        try:
            payload = json.loads(serialized)
        except ValueError as exc:
            raise StateMismatch("Malformed OAuth state.") from exc
        if not isinstance(payload, dict):
            raise StateMismatch("Malformed OAuth state.")
        return payload


class OAuthProviderClient:
    """Build authorization URLs and call the token endpoint for one provider."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        timeout: float = 10.0,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._retry = retry_config or RetryConfig()
        self._transport = transport

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def build_authorization_url(self, *, service: Service, state: str) -> str:
        """Construct the provider consent URL for a service."""
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._config.scopes_for(service)),
            "state": state,
        }
        params.update(self._config.extra_authorize_params)
        return f"{self._config.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> ProviderTokenResponse:
        """Exchange an authorization code for tokens."""
        return await self._token_request(
            {
                "code": code,
                "redirect_uri": self._config.redirect_uri,
                "grant_type": "authorization_code",
            },
            action="exchange authorization code",
        )

    async def refresh_token(self, refresh_token: str) -> ProviderTokenResponse:
        """Obtain a new access token using the refresh grant."""
        return await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"},
            action="refresh access token",
        )

    async def _token_request(
        self, payload: Dict[str, str], *, action: str
    ) -> ProviderTokenResponse:
        data = dict(payload)
        auth = None
        if self._config.token_auth_basic:
            auth = httpx.BasicAuth(self._config.client_id, self._config.client_secret)
        else:
            data["client_id"] = self._config.client_id
            data["client_secret"] = self._config.client_secret

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await request_with_retry(
                client,
                "POST",
                self._config.token_url,
                retry_config=self._retry,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
            )

        provider = self._config.provider.value
        if response.status_code != httpx.codes.OK:
            detail = _describe_error(response)
            logger.warning(
                "%s token endpoint refused to %s (%d): %s",
                provider,
                action,
                response.status_code,
                detail,
            )
            if is_upstream_failure(response.status_code):
                raise UpstreamUnavailable(
                    f"Could not {action} with {provider}: {detail}"
                )
            raise ExchangeFailed(f"Failed to {action} with {provider}: {detail}")

        try:
            return ProviderTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ExchangeFailed(
                f"Unexpected token response from {provider}.", status_code=502
            ) from exc


def _describe_error(response: httpx.Response) -> str:
    try:
        return ProviderErrorResponse.model_validate(response.json()).describe()
    except (ValueError, ValidationError):
        return f"HTTP {response.status_code}"


__all__ = ["OAuthProviderClient", "OAuthStateEncoder"]
