"""Handle inbound Telegram updates for deployed chatbots."""

from __future__ import annotations

import hmac
import logging
from typing import Awaitable, Callable

from agent_dashboard.schemas.telegram import TelegramUpdate

logger = logging.getLogger(__name__)

MessageProcessor = Callable[[str, str], Awaitable[str]]


async def echo_processor(bot_id: str, text: str) -> str:
    """Default reply generator until a language-model backend is attached."""
    return f"Echo from bot {bot_id}: {text}"


class TelegramWebhookService:
    """Turn Telegram updates into chatbot replies."""

    def __init__(
        self,
        *,
        processor: MessageProcessor = echo_processor,
        expected_secret: Callable[[str], str | None] | None = None,
    ) -> None:
        self._processor = processor
        self._expected_secret = expected_secret

    def verify_secret(self, bot_id: str, presented: str | None) -> bool:
        """Check Telegram's secret-token header when webhooks were registered with one."""
        if self._expected_secret is None:
            return True
        expected = self._expected_secret(bot_id)
        if expected is None:
            return True
        if presented is None:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))

    async def handle_update(self, bot_id: str, update: TelegramUpdate) -> str | None:
        """Return the reply for a text message, or ``None`` for other updates."""
        message = update.message or update.edited_message
        if message is None:
            logger.debug("Ignoring non-message update %s for bot %s", update.update_id, bot_id)
            return None

        text = (message.text or message.caption or "").strip()
        if not text:
            return None

        logger.info(
            "Telegram update %s for bot %s from %s",
            update.update_id,
            bot_id,
            message.sender_username or message.chat_id,
        )
        reply = await self._processor(bot_id, text)
        logger.info("Reply for bot %s chat %s: %s", bot_id, message.chat_id, reply[:200])
        return reply


__all__ = ["MessageProcessor", "TelegramWebhookService", "echo_processor"]
