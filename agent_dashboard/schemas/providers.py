"""
Response schemas for third-party provider APIs.

Upstream JSON is parsed into these models instead of being read field by
field, so a malformed payload fails in one place.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class ProviderTokenResponse(BaseModel):
    """RFC 6749 token endpoint success body."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: int = Field(3600, gt=0)
    token_type: str = "Bearer"
    scope: Optional[str] = None
    id_token: Optional[str] = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def _default_missing_lifetime(cls, value: Any) -> Any:
        # Some providers send null or a numeric string.
        return 3600 if value in (None, "") else value


class ProviderErrorResponse(BaseModel):
    """RFC 6749 token endpoint error body."""

    model_config = ConfigDict(extra="ignore")

    error: str = "unknown_error"
    error_description: Optional[str] = None

    def describe(self) -> str:
        if self.error_description:
            return f"{self.error}: {self.error_description}"
        return self.error


class DiscordUser(BaseModel):
    """Subset of the Discord ``users/@me`` payload."""

    model_config = ConfigDict(extra="ignore")

    id: str
    username: str
    bot: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_snowflake(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class DiscordError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = "Unknown error"
    code: Optional[int] = None


class TelegramBotUser(BaseModel):
    """Subset of the Telegram ``User`` object returned by ``getMe``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    is_bot: bool = True
    first_name: str = ""
    username: str


class TelegramResponse(BaseModel, Generic[T]):
    """Envelope wrapping every Telegram Bot API response."""

    model_config = ConfigDict(extra="ignore")

    ok: bool
    result: Optional[T] = None
    description: Optional[str] = None
    error_code: Optional[int] = None


__all__ = [
    "DiscordError",
    "DiscordUser",
    "ProviderErrorResponse",
    "ProviderTokenResponse",
    "TelegramBotUser",
    "TelegramResponse",
]
