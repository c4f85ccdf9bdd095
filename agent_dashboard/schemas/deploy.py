"""
Pydantic models for chatbot deployment requests and responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DiscordDeployRequest(BaseModel):
    """Credentials supplied by the dashboard to deploy a bot to Discord."""

    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(..., alias="botId", description="Internal chatbot identifier.")
    bot_name: str = Field("", alias="botName")
    token: str = Field(..., min_length=1, description="Discord bot token.")
    client_id: str = Field(
        ..., alias="clientId", min_length=1, description="Discord application id."
    )


class TelegramDeployRequest(BaseModel):
    """Credentials supplied by the dashboard to deploy a bot to Telegram."""

    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(..., alias="botId", min_length=1)
    bot_name: str = Field("", alias="botName")
    token: str = Field(..., min_length=1, description="Token issued by @BotFather.")


class DiscordBotDetails(BaseModel):
    username: str
    id: str


class DiscordDeployResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    bot_details: DiscordBotDetails = Field(..., alias="botDetails")
    invite_url: str = Field(..., alias="inviteUrl")


class TelegramDeployResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    username: str
    webhook_url: Optional[str] = Field(None, alias="webhookUrl")


__all__ = [
    "DiscordBotDetails",
    "DiscordDeployRequest",
    "DiscordDeployResponse",
    "TelegramDeployRequest",
    "TelegramDeployResponse",
]
