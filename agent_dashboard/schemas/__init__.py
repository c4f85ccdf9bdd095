"""Public schema exports."""

from .auth import (
    AuthorizationStart,
    AuthStatus,
    CallbackResult,
    OAuthCallbackPayload,
    TokenDebugInfo,
)
from .deploy import (
    DiscordBotDetails,
    DiscordDeployRequest,
    DiscordDeployResponse,
    TelegramDeployRequest,
    TelegramDeployResponse,
)
from .telegram import TelegramMessage, TelegramUpdate

__all__ = [
    "AuthStatus",
    "AuthorizationStart",
    "CallbackResult",
    "DiscordBotDetails",
    "DiscordDeployRequest",
    "DiscordDeployResponse",
    "OAuthCallbackPayload",
    "TelegramDeployRequest",
    "TelegramDeployResponse",
    "TelegramMessage",
    "TelegramUpdate",
    "TokenDebugInfo",
]
