"""Telegram Bot API client for credential checks and webhook registration."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from agent_dashboard.core.errors import (
    InvalidCredential,
    UpstreamUnavailable,
    WebhookRegistrationFailed,
)
from agent_dashboard.schemas.providers import TelegramBotUser, TelegramResponse
from agent_dashboard.utils.http import (
    RetryConfig,
    is_upstream_failure,
    request_with_retry,
)

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramBotClient:
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self._timeout = timeout
        self._retry = retry_config or RetryConfig()
        self._transport = transport
        self._api_base = api_base.rstrip("/")

    async def get_me(self, token: str) -> TelegramBotUser:
        """Resolve the bot behind ``token`` or raise ``InvalidCredential``."""
        envelope = await self._call(token, "getMe", "GET")
        if envelope is None or not envelope.ok:
            description = envelope.description if envelope else None
            raise InvalidCredential(
                f"Invalid Telegram token: {description or 'Unknown error'}"
            )
        try:
            return TelegramBotUser.model_validate(envelope.result)
        except ValidationError as exc:
            raise InvalidCredential(
                "Invalid Telegram token: unexpected getMe response."
            ) from exc

    async def set_webhook(
        self,
        token: str,
        *,
        url: str,
        drop_pending_updates: bool = True,
        secret_token: str | None = None,
    ) -> None:
        """Register ``url`` as the bot's webhook or raise ``WebhookRegistrationFailed``."""
        payload: dict[str, Any] = {
            "url": url,
            "drop_pending_updates": drop_pending_updates,
        }
        if secret_token:
            payload["secret_token"] = secret_token
        envelope = await self._call(token, "setWebhook", "POST", json=payload)
        if envelope is None or not envelope.ok:
            description = envelope.description if envelope else None
            raise WebhookRegistrationFailed(
                f"Failed to set webhook: {description or 'Unknown error'}"
            )

    async def _call(
        self, token: str, method: str, http_method: str, **kwargs: Any
    ) -> TelegramResponse[Any] | None:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await request_with_retry(
                client,
                http_method,
                f"{self._api_base}/bot{token}/{method}",
                retry_config=self._retry,
                **kwargs,
            )
        if is_upstream_failure(response.status_code):
            logger.warning("Telegram %s unavailable (%d)", method, response.status_code)
            raise UpstreamUnavailable(
                f"Telegram is unavailable (HTTP {response.status_code}); try again later."
            )
        try:
            envelope = TelegramResponse[Any].model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning(
                "Telegram %s returned an unparseable body (%d)",
                method,
                response.status_code,
            )
            return None
        if not response.is_success and envelope.ok:
            return envelope.model_copy(update={"ok": False})
        return envelope


def derive_webhook_secret(secret: str, bot_id: str) -> str:
    """Per-bot value for Telegram's ``X-Telegram-Bot-Api-Secret-Token`` header."""
    return hmac.new(
        secret.encode("utf-8"), bot_id.encode("utf-8"), hashlib.sha256
    ).hexdigest()


__all__ = ["TELEGRAM_API_BASE", "TelegramBotClient", "derive_webhook_secret"]
