"""Thin Discord REST client used to validate bot credentials."""

from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

import httpx
from pydantic import ValidationError

from agent_dashboard.core.errors import InvalidCredential, UpstreamUnavailable
from agent_dashboard.schemas.providers import DiscordError, DiscordUser
from agent_dashboard.utils.http import (
    RetryConfig,
    is_upstream_failure,
    request_with_retry,
)

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"
DISCORD_AUTHORIZE_URL = "https://discord.com/api/oauth2/authorize"
DISCORD_INVITE_PERMISSIONS = 2147483648
DISCORD_INVITE_SCOPES = ("bot", "applications.commands")


class DiscordClient:
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        api_base: str = DISCORD_API_BASE,
    ) -> None:
        self._timeout = timeout
        self._retry = retry_config or RetryConfig()
        self._transport = transport
        self._api_base = api_base.rstrip("/")

    async def get_current_user(self, token: str) -> DiscordUser:
        """Resolve the bot behind ``token`` or raise ``InvalidCredential``."""
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await request_with_retry(
                client,
                "GET",
                f"{self._api_base}/users/@me",
                retry_config=self._retry,
                headers={"Authorization": f"Bot {token}"},
            )

        if is_upstream_failure(response.status_code):
            logger.warning("Discord identity check unavailable (%d)", response.status_code)
            raise UpstreamUnavailable(
                f"Discord is unavailable (HTTP {response.status_code}); try again later."
            )
        if not response.is_success:
            try:
                message = DiscordError.model_validate(response.json()).message
            except ValueError:
                message = f"HTTP {response.status_code}"
            logger.info("Discord rejected bot token (%d)", response.status_code)
            raise InvalidCredential(f"Invalid Discord token: {message}")

        try:
            return DiscordUser.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise InvalidCredential(
                "Invalid Discord token: unexpected identity response."
            ) from exc


def build_invite_url(client_id: str) -> str:
    """Return the URL a server admin follows to install the bot."""
    query = urlencode(
        {
            "client_id": client_id,
            "permissions": DISCORD_INVITE_PERMISSIONS,
            "scope": " ".join(DISCORD_INVITE_SCOPES),
        },
        quote_via=quote,
    )
    return f"{DISCORD_AUTHORIZE_URL}?{query}"


__all__ = [
    "DISCORD_INVITE_PERMISSIONS",
    "DISCORD_INVITE_SCOPES",
    "DiscordClient",
    "build_invite_url",
]
