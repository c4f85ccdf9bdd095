"""Expose constructed client wrappers."""

from .discord import DiscordClient
from .oauth import OAuthProviderClient, OAuthStateEncoder
from .sqlite_store import SQLiteStateStore, SQLiteTokenStore
from .telegram import TelegramBotClient

__all__ = [
    "DiscordClient",
    "OAuthProviderClient",
    "OAuthStateEncoder",
    "SQLiteStateStore",
    "SQLiteTokenStore",
    "TelegramBotClient",
]
