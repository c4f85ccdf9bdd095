"""Inbound Telegram webhook payloads."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramMessage(BaseModel):
    """Subset of Telegram message fields used by chatbot replies."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    date: int
    text: Optional[str] = None
    caption: Optional[str] = None
    chat: Dict[str, Any]
    from_: Optional[Dict[str, Any]] = Field(None, alias="from")

    @property
    def chat_id(self) -> Any:
        return self.chat.get("id")

    @property
    def sender_username(self) -> Optional[str]:
        return (self.from_ or {}).get("username")


class TelegramUpdate(BaseModel):
    """Minimal Telegram update payload we care about."""

    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None


__all__ = ["TelegramMessage", "TelegramUpdate"]
