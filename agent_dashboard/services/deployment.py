"""Validate messaging-platform credentials and wire chatbots to them."""

from __future__ import annotations

import logging

from agent_dashboard.clients.discord import DiscordClient, build_invite_url
from agent_dashboard.clients.telegram import TelegramBotClient, derive_webhook_secret
from agent_dashboard.core.config import DeploymentSettings
from agent_dashboard.schemas.deploy import (
    DiscordBotDetails,
    DiscordDeployRequest,
    DiscordDeployResponse,
    TelegramDeployRequest,
    TelegramDeployResponse,
)

logger = logging.getLogger(__name__)

TELEGRAM_WEBHOOK_PATH = "/api/webhook/telegram/{bot_id}"


class DeploymentService:
    """
    Deploy chatbots to Discord and Telegram.

    Both operations can be repeated with the same credentials: Discord is a
    read-only identity check and Telegram's ``setWebhook`` replaces any
    previously registered URL.
    """

    def __init__(
        self,
        *,
        discord_client: DiscordClient,
        telegram_client: TelegramBotClient,
        settings: DeploymentSettings,
    ) -> None:
        self._discord = discord_client
        self._telegram = telegram_client
        self._settings = settings

    async def deploy_discord(self, request: DiscordDeployRequest) -> DiscordDeployResponse:
        bot = await self._discord.get_current_user(request.token)
        logger.info(
            "Validated Discord bot %s (bot %s, client %s)",
            request.bot_name or request.bot_id,
            bot.id,
            request.client_id,
        )
        return DiscordDeployResponse(
            message=f"Successfully deployed {request.bot_name or bot.username} to Discord!",
            bot_details=DiscordBotDetails(username=bot.username, id=bot.id),
            invite_url=build_invite_url(request.client_id),
        )

    async def deploy_telegram(
        self, request: TelegramDeployRequest, *, request_origin: str
    ) -> TelegramDeployResponse:
        bot = await self._telegram.get_me(request.token)

        webhook_url = self.webhook_url(request.bot_id, request_origin=request_origin)
        secret = self.webhook_secret(request.bot_id)
        await self._telegram.set_webhook(
            request.token,
            url=webhook_url,
            drop_pending_updates=True,
            secret_token=secret,
        )
        logger.info(
            "Registered Telegram webhook for bot %s (@%s)", request.bot_id, bot.username
        )
        return TelegramDeployResponse(
            message=f"Successfully deployed {request.bot_name or bot.username} to Telegram!",
            username=bot.username,
            webhook_url=webhook_url,
        )

    def webhook_url(self, bot_id: str, *, request_origin: str) -> str:
        origin = (self._settings.public_api_url or request_origin).rstrip("/")
        return origin + TELEGRAM_WEBHOOK_PATH.format(bot_id=bot_id)

    def webhook_secret(self, bot_id: str) -> str | None:
        if not self._settings.telegram_webhook_secret:
            return None
        return derive_webhook_secret(self._settings.telegram_webhook_secret, bot_id)


__all__ = ["DeploymentService", "TELEGRAM_WEBHOOK_PATH"]
